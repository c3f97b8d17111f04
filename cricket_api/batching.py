# cricket_api/batching.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from cricket_api.config import MAX_CONCURRENT_COMMITS, MIGRATION_BATCH_SIZE
from cricket_api.store import DocumentStore, StoreUnavailableError, WriteBatch

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    written: int = 0
    commits: int = 0
    failed_keys: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_keys)


class BatchWriter:
    """
    Chunked, bounded-concurrency writer shared by every migration phase.

    Writes accumulate in the current chunk; a full chunk is committed in the
    background (at most `max_concurrency` commits in flight) and a new chunk
    started. close() flushes the tail and waits for everything.

        async with BatchWriter(store, batch_size=10) as writer:
            writer.set("teams_v2", team_id, doc)
        print(writer.result.written)
    """

    def __init__(
        self,
        store: DocumentStore,
        batch_size: int = MIGRATION_BATCH_SIZE,
        max_concurrency: int = MAX_CONCURRENT_COMMITS,
        label: str = "writes",
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.store = store
        self.batch_size = batch_size
        self.label = label
        self.result = BatchResult()

        self._sem = asyncio.Semaphore(max_concurrency)
        self._batch: WriteBatch = store.batch()
        self._keys: List[str] = []
        self._tasks: List[Tuple["asyncio.Task[None]", List[str]]] = []
        self._closed = False

    # -------------------------
    # Queueing
    # -------------------------
    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False, key: Optional[str] = None) -> None:
        self._check_open()
        self._batch.set(collection, doc_id, data, merge=merge)
        self._added(key or doc_id)

    def update(self, collection: str, doc_id: str, data: Dict[str, Any], key: Optional[str] = None) -> None:
        self._check_open()
        self._batch.update(collection, doc_id, data)
        self._added(key or doc_id)

    def delete(self, collection: str, doc_id: str, key: Optional[str] = None) -> None:
        self._check_open()
        self._batch.delete(collection, doc_id)
        self._added(key or doc_id)

    def __len__(self) -> int:
        return len(self._batch)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("BatchWriter already closed")

    def _added(self, key: str) -> None:
        self._keys.append(key)
        if len(self._batch) >= self.batch_size:
            self.flush()

    # -------------------------
    # Committing
    # -------------------------
    def flush(self) -> None:
        if len(self._batch) == 0:
            return
        batch, keys = self._batch, self._keys
        self._batch, self._keys = self.store.batch(), []
        self._tasks.append((asyncio.ensure_future(self._commit(batch)), keys))

    async def _commit(self, batch: WriteBatch) -> None:
        async with self._sem:
            logger.debug("Committing %d %s", len(batch), self.label)
            await batch.commit()
        self.result.written += len(batch)
        self.result.commits += 1

    async def close(self) -> BatchResult:
        if self._closed:
            return self.result
        self.flush()
        self._closed = True

        outcomes = await asyncio.gather(*(t for t, _ in self._tasks), return_exceptions=True)

        unavailable: Optional[BaseException] = None
        for (_, task_keys), outcome in zip(self._tasks, outcomes):
            if isinstance(outcome, StoreUnavailableError):
                unavailable = unavailable or outcome
            elif isinstance(outcome, Exception):
                logger.error("Batch of %d %s failed: %s", len(task_keys), self.label, outcome)
                self.result.failed_keys.extend(task_keys)
                self.result.errors.append(str(outcome))

        if unavailable is not None:
            raise unavailable

        logger.info(
            "%s: %d written in %d commits, %d failed",
            self.label, self.result.written, self.result.commits, self.result.failed,
        )
        return self.result

    async def __aenter__(self) -> "BatchWriter":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            await self.close()
        else:
            # Let in-flight commits settle; the original error wins
            await asyncio.gather(*(t for t, _ in self._tasks), return_exceptions=True)
            self._closed = True
