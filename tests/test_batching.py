# tests/test_batching.py
import asyncio

import pytest

from cricket_api.batching import BatchWriter
from cricket_api.store import MemoryStore, StoreUnavailableError


class UnavailableStore(MemoryStore):
    def batch(self):
        batch = super().batch()

        async def commit():
            raise StoreUnavailableError("deadline exceeded")

        batch.commit = commit
        return batch


def test_writes_are_chunked(store):
    async def go():
        async with BatchWriter(store, batch_size=10, max_concurrency=2, label="teams") as writer:
            for i in range(25):
                writer.set("teams_v2", f"t{i}", {"n": i})
        return writer.result

    result = asyncio.run(go())
    assert (result.written, result.commits, result.failed) == (25, 3, 0)
    assert store.commits == 3
    assert len(store.dump("teams_v2")) == 25


def test_failed_chunk_reports_keys_and_keeps_others(store):
    async def go():
        writer = BatchWriter(store, batch_size=2)
        writer.set("teams_v2", "t1", {"n": 1})
        writer.set("teams_v2", "t2", {"n": 2})
        writer.update("teams_v2", "missing", {"n": 3}, key="teams:missing")
        writer.set("teams_v2", "t4", {"n": 4})
        return await writer.close()

    result = asyncio.run(go())
    assert result.failed_keys == ["teams:missing", "t4"]
    assert result.written == 2
    # The failing chunk left nothing half-applied
    assert sorted(store.dump("teams_v2")) == ["t1", "t2"]


def test_update_after_set_in_same_chunk(store):
    async def go():
        async with BatchWriter(store, batch_size=5) as writer:
            writer.set("players_v2", "p1", {"name": "A Kumar", "stats": {"runs": 0}})
            writer.update("players_v2", "p1", {"stats.runs": 45})
        return await store.get_document("players_v2", "p1")

    assert asyncio.run(go()) == {"name": "A Kumar", "stats": {"runs": 45}}


def test_unavailable_store_is_reraised():
    async def go():
        writer = BatchWriter(UnavailableStore(), batch_size=1)
        writer.set("teams_v2", "t1", {"n": 1})
        await writer.close()

    with pytest.raises(StoreUnavailableError):
        asyncio.run(go())


def test_closed_writer_rejects_writes(store):
    async def go():
        writer = BatchWriter(store)
        await writer.close()
        writer.set("teams_v2", "t1", {})

    with pytest.raises(RuntimeError):
        asyncio.run(go())


def test_batch_size_must_be_positive(store):
    with pytest.raises(ValueError):
        BatchWriter(store, batch_size=0)


def test_max_concurrency_must_be_positive(store):
    with pytest.raises(ValueError):
        BatchWriter(store, max_concurrency=0)
