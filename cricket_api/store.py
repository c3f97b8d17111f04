# cricket_api/store.py
from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.api_core import exceptions as gexc
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from cricket_api.config import (
    FIREBASE_CLIENT_EMAIL,
    FIREBASE_CLIENT_ID,
    FIREBASE_PRIVATE_KEY,
    FIREBASE_PRIVATE_KEY_ID,
    FIREBASE_PROJECT_ID,
    GOOGLE_APPLICATION_CREDENTIALS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (field path, operator, value); field paths may be dotted ("team1.id")
Filter = Tuple[str, str, Any]


class StoreError(Exception):
    """Base class for document store failures."""
    pass


class WriteConflictError(StoreError):
    """Raised when a transaction loses a race and was rolled back."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the document store cannot be reached at all."""
    pass


@dataclass
class DocumentSnapshot:
    id: str
    data: Dict[str, Any]


# -----------------------------
# Field-path helpers (shared by MemoryStore and tests)
# -----------------------------
def get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Firestore set(merge=True) semantics: nested maps merge, everything else replaces."""
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _matches(doc: Dict[str, Any], flt: Filter) -> bool:
    field, op, value = flt
    actual = get_path(doc, field)
    if op == "==":
        return actual == value
    if op == "!=":
        return actual != value
    if op == "in":
        return actual in value
    if op == "array_contains":
        return isinstance(actual, list) and value in actual
    if actual is None:
        return False
    if op == "<":
        return actual < value
    if op == "<=":
        return actual <= value
    if op == ">":
        return actual > value
    if op == ">=":
        return actual >= value
    raise ValueError(f"Unsupported filter operator: {op}")


# -----------------------------
# Abstract contract
# -----------------------------
class WriteBatch(ABC):
    """Collects writes and applies them atomically on commit()."""

    def __init__(self) -> None:
        self._ops: List[Tuple[str, str, str, Optional[Dict[str, Any]], bool]] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._ops.append(("set", collection, doc_id, data, merge))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._ops.append(("update", collection, doc_id, data, False))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(("delete", collection, doc_id, None, False))

    def __len__(self) -> int:
        return len(self._ops)

    @abstractmethod
    async def commit(self) -> None:
        ...


class Transaction(ABC):
    """Read-modify-write unit. Reads happen before any buffered write is applied."""

    def __init__(self) -> None:
        self._writes: List[Tuple[str, str, str, Dict[str, Any], bool]] = []

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("set", collection, doc_id, data, merge))

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, data, False))


class DocumentStore(ABC):
    @abstractmethod
    async def get(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        ...

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Partial update; keys may be dotted field paths. Missing document -> KeyError."""
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        ...

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        ...

    async def delete_collection(self, collection: str, chunk_size: int = 500) -> int:
        snaps = await self.get(collection)
        deleted = 0
        for i in range(0, len(snaps), chunk_size):
            batch = self.batch()
            for snap in snaps[i:i + chunk_size]:
                batch.delete(collection, snap.id)
            await batch.commit()
            deleted += len(batch)
        return deleted


# -----------------------------
# In-memory implementation (tests, --dry-run)
# -----------------------------
class _MemoryBatch(WriteBatch):
    def __init__(self, store: "MemoryStore") -> None:
        super().__init__()
        self._store = store

    async def commit(self) -> None:
        # Validate first so a bad update leaves nothing half-applied
        pending = set()
        for kind, collection, doc_id, _, _ in self._ops:
            key = (collection, doc_id)
            if kind == "set":
                pending.add(key)
            elif kind == "delete":
                pending.discard(key)
            elif key not in pending and doc_id not in self._store._collection(collection):
                raise KeyError(f"{collection}/{doc_id} does not exist")

        for kind, collection, doc_id, data, merge in self._ops:
            self._store._apply(kind, collection, doc_id, data, merge)
        self._store.commits += 1
        await asyncio.sleep(0)


class _MemoryTransaction(Transaction):
    def __init__(self, store: "MemoryStore") -> None:
        super().__init__()
        self._store = store

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        if self._writes:
            raise RuntimeError("Transaction reads must happen before writes")
        doc = self._store._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None


class MemoryStore(DocumentStore):
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._tx_lock = asyncio.Lock()
        self.commits = 0

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(collection, {})

    def _apply(self, kind: str, collection: str, doc_id: str, data: Optional[Dict[str, Any]], merge: bool) -> None:
        coll = self._collection(collection)
        if kind == "delete":
            coll.pop(doc_id, None)
            return

        payload = copy.deepcopy(data or {})
        if kind == "set":
            if merge and doc_id in coll:
                deep_merge(coll[doc_id], payload)
            else:
                coll[doc_id] = payload
            return

        if doc_id not in coll:
            raise KeyError(f"{collection}/{doc_id} does not exist")
        for path, value in payload.items():
            set_path(coll[doc_id], path, value)

    def dump(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._collection(collection))

    async def get(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        out: List[DocumentSnapshot] = []
        for doc_id, doc in self._collection(collection).items():
            if filters and not all(_matches(doc, f) for f in filters):
                continue
            out.append(DocumentSnapshot(id=doc_id, data=copy.deepcopy(doc)))
            if limit is not None and len(out) >= limit:
                break
        await asyncio.sleep(0)
        return out

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(collection).get(doc_id)
        await asyncio.sleep(0)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._apply("set", collection, doc_id, data, merge)
        await asyncio.sleep(0)

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._apply("update", collection, doc_id, data, False)
        await asyncio.sleep(0)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._apply("delete", collection, doc_id, None, False)
        await asyncio.sleep(0)

    def batch(self) -> WriteBatch:
        return _MemoryBatch(self)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with self._tx_lock:
            tx = _MemoryTransaction(self)
            result = await fn(tx)
            for kind, collection, doc_id, data, merge in tx._writes:
                self._apply(kind, collection, doc_id, data, merge)
            return result


# -----------------------------
# Firestore implementation
# -----------------------------
@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map google-api-core exceptions onto store errors."""
    try:
        yield
    except gexc.Aborted as e:
        raise WriteConflictError(f"{action}: {e}") from e
    except (gexc.ServiceUnavailable, gexc.DeadlineExceeded, gexc.Unauthenticated) as e:
        logger.error("Firestore unavailable during %s: %s", action, e)
        raise StoreUnavailableError(f"{action}: {e}") from e


def _credentials() -> Any:
    if FIREBASE_PRIVATE_KEY and FIREBASE_CLIENT_EMAIL:
        return credentials.Certificate({
            "type": "service_account",
            "project_id": FIREBASE_PROJECT_ID,
            "private_key_id": FIREBASE_PRIVATE_KEY_ID,
            "private_key": FIREBASE_PRIVATE_KEY,
            "client_email": FIREBASE_CLIENT_EMAIL,
            "client_id": FIREBASE_CLIENT_ID,
            "token_uri": "https://oauth2.googleapis.com/token",
        })
    if GOOGLE_APPLICATION_CREDENTIALS:
        return credentials.Certificate(GOOGLE_APPLICATION_CREDENTIALS)
    return credentials.ApplicationDefault()


def _firestore_client() -> Any:
    try:
        try:
            app = firebase_admin.get_app()
        except ValueError:
            options = {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None
            app = firebase_admin.initialize_app(_credentials(), options)
            logger.info("Initialized Firebase app for project %s", FIREBASE_PROJECT_ID or "<default>")
        return firestore_async.client(app)
    except (ValueError, OSError, GoogleAuthError) as e:
        # Missing / malformed credentials: nothing can be read or written
        raise StoreUnavailableError(f"Cannot initialise Firestore client: {e}") from e


class FirestoreStore(DocumentStore):
    """
    Async Firestore adapter.

    google-api-core errors are translated at this boundary:
    - Aborted (lost transaction race) -> WriteConflictError
    - ServiceUnavailable / DeadlineExceeded -> StoreUnavailableError
    """

    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else _firestore_client()

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    async def get(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        query = self._client.collection(collection)
        for field, op, value in filters or []:
            query = query.where(filter=FieldFilter(field, op, value))
        if limit is not None:
            query = query.limit(limit)

        out: List[DocumentSnapshot] = []
        with _translate_errors(f"query {collection}"):
            async for snap in query.stream():
                out.append(DocumentSnapshot(id=snap.id, data=snap.to_dict() or {}))
        return out

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with _translate_errors(f"get {collection}/{doc_id}"):
            snap = await self._ref(collection, doc_id).get()
        return snap.to_dict() if snap.exists else None

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with _translate_errors(f"set {collection}/{doc_id}"):
            await self._ref(collection, doc_id).set(data, merge=merge)

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        try:
            with _translate_errors(f"update {collection}/{doc_id}"):
                await self._ref(collection, doc_id).update(data)
        except gexc.NotFound as e:
            raise KeyError(f"{collection}/{doc_id} does not exist") from e

    async def delete(self, collection: str, doc_id: str) -> None:
        with _translate_errors(f"delete {collection}/{doc_id}"):
            await self._ref(collection, doc_id).delete()

    def batch(self) -> WriteBatch:
        return _FirestoreBatch(self)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        transaction = self._client.transaction()

        @firestore.async_transactional
        async def _run(fs_tx: Any) -> T:
            tx = _FirestoreTransaction(self, fs_tx)
            result = await fn(tx)
            for kind, collection, doc_id, data, merge in tx._writes:
                ref = self._ref(collection, doc_id)
                if kind == "set":
                    fs_tx.set(ref, data, merge=merge)
                else:
                    fs_tx.update(ref, data)
            return result

        try:
            with _translate_errors("transaction"):
                return await _run(transaction)
        except ValueError as e:
            # async_transactional wraps the last Aborted in a ValueError once its own attempts run out
            if isinstance(e.__cause__, gexc.Aborted):
                raise WriteConflictError(str(e)) from e
            raise


class _FirestoreBatch(WriteBatch):
    def __init__(self, store: FirestoreStore) -> None:
        super().__init__()
        self._store = store

    async def commit(self) -> None:
        if not self._ops:
            return
        fs_batch = self._store._client.batch()
        for kind, collection, doc_id, data, merge in self._ops:
            ref = self._store._ref(collection, doc_id)
            if kind == "set":
                fs_batch.set(ref, data, merge=merge)
            elif kind == "update":
                fs_batch.update(ref, data)
            else:
                fs_batch.delete(ref)
        with _translate_errors(f"batch commit ({len(self._ops)} writes)"):
            await fs_batch.commit()


class _FirestoreTransaction(Transaction):
    def __init__(self, store: FirestoreStore, fs_tx: Any) -> None:
        super().__init__()
        self._store = store
        self._fs_tx = fs_tx

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with _translate_errors(f"transactional get {collection}/{doc_id}"):
            snap = await self._store._ref(collection, doc_id).get(transaction=self._fs_tx)
        return snap.to_dict() if snap.exists else None
