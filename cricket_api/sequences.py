# cricket_api/sequences.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from cricket_api.config import COLLECTIONS, SEQUENCE_MAX_RETRIES, SEQUENCE_RETRY_BASE_SECONDS
from cricket_api.store import DocumentStore, StoreError, Transaction, WriteConflictError

logger = logging.getLogger(__name__)

# 19-digit entity ids: base + sequence value. Players live in their own 2xxx range.
ENTITY_ID_BASE: Dict[str, int] = {
    "teams": 10 ** 18,
    "matches": 10 ** 18,
    "innings": 10 ** 18,
    "tournaments": 10 ** 18,
    "players": 2 * 10 ** 18,
}

ENTITY_TYPES = tuple(ENTITY_ID_BASE)


class SequenceExhaustedError(StoreError):
    """Raised when a counter increment keeps conflicting after all retries."""
    pass


@dataclass(frozen=True)
class AllocatedId:
    display_id: int      # small sequential number for humans / UI
    entity_id: str       # 19-digit stable internal reference
    document_key: str    # YYYYMMDDHHMMSS + 7-digit sequence, sorts by creation time


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def entity_id_for(entity_type: str, value: int) -> str:
    if entity_type not in ENTITY_ID_BASE:
        raise ValueError(f"Unknown entity type: {entity_type}")
    if value <= 0:
        raise ValueError("Sequence values start at 1")
    return str(ENTITY_ID_BASE[entity_type] + value)


def sequence_from_entity_id(entity_type: str, entity_id: str) -> int:
    """Inverse of entity_id_for; used to floor counters against existing data."""
    return int(entity_id) - ENTITY_ID_BASE[entity_type]


class SequenceAllocator:
    """
    Per-entity-type counters stored as one document each: {currentValue}.

    Every increment is a transactional read-modify-write; lost races are
    retried here with exponential backoff.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = COLLECTIONS["sequences"],
        max_retries: int = SEQUENCE_MAX_RETRIES,
        retry_base_seconds: float = SEQUENCE_RETRY_BASE_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.collection = collection
        self.max_retries = max_retries
        self.retry_base_seconds = retry_base_seconds
        self.clock = clock

    async def next_value(self, entity_type: str) -> int:
        if entity_type not in ENTITY_ID_BASE:
            raise ValueError(f"Unknown entity type: {entity_type}")

        async def _increment(tx: Transaction) -> int:
            doc = await tx.get(self.collection, entity_type)
            current = int((doc or {}).get("currentValue", 0))
            new_value = current + 1
            tx.set(
                self.collection,
                entity_type,
                {"entityType": entity_type, "currentValue": new_value, "updatedAt": self.clock()},
            )
            return new_value

        last_error: Optional[WriteConflictError] = None
        for attempt in range(self.max_retries):
            try:
                return await self.store.run_transaction(_increment)
            except WriteConflictError as e:
                last_error = e
                delay = self.retry_base_seconds * (2 ** attempt)
                logger.warning(
                    "Sequence %s conflict (attempt %d/%d), retrying in %.2fs",
                    entity_type, attempt + 1, self.max_retries, delay,
                )
                await asyncio.sleep(delay)

        raise SequenceExhaustedError(
            f"Sequence {entity_type} still conflicting after {self.max_retries} attempts"
        ) from last_error

    def format_display_id(self, value: int, when: Optional[datetime] = None) -> str:
        stamp = (when or self.clock()).strftime("%Y%m%d%H%M%S")
        return f"{stamp}{value:07d}"

    async def new_display_id(self, entity_type: str) -> str:
        value = await self.next_value(entity_type)
        return self.format_display_id(value)

    async def allocate(self, entity_type: str) -> AllocatedId:
        """One increment -> display id, 19-digit entity id and time-ordered key."""
        value = await self.next_value(entity_type)
        return AllocatedId(
            display_id=value,
            entity_id=entity_id_for(entity_type, value),
            document_key=self.format_display_id(value),
        )

    async def current_value(self, entity_type: str) -> int:
        doc = await self.store.get_document(self.collection, entity_type)
        return int((doc or {}).get("currentValue", 0))

    async def reset(self, entity_type: str, value: int = 0) -> None:
        await self.store.set(
            self.collection,
            entity_type,
            {"entityType": entity_type, "currentValue": int(value), "updatedAt": self.clock()},
        )
        logger.info("Sequence %s reset to %d", entity_type, value)

    async def reset_all(self) -> None:
        for entity_type in ENTITY_TYPES:
            await self.reset(entity_type)

    async def ensure_at_least(self, entity_type: str, floor: int) -> int:
        """Raise the counter to `floor` if it is lower (never lowers it)."""

        async def _floor(tx: Transaction) -> int:
            doc = await tx.get(self.collection, entity_type)
            current = int((doc or {}).get("currentValue", 0))
            if current >= floor:
                return current
            tx.set(
                self.collection,
                entity_type,
                {"entityType": entity_type, "currentValue": int(floor), "updatedAt": self.clock()},
            )
            return int(floor)

        return await self.store.run_transaction(_floor)
