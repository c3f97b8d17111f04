# tests/test_sequences.py
import asyncio

import pytest

from cricket_api.sequences import (
    SequenceAllocator,
    SequenceExhaustedError,
    entity_id_for,
    sequence_from_entity_id,
)
from cricket_api.store import MemoryStore, WriteConflictError

from conftest import fixed_clock


class ConflictingStore(MemoryStore):
    """Loses the first `conflicts` transactions."""

    def __init__(self, conflicts: int) -> None:
        super().__init__()
        self.conflicts = conflicts
        self.attempts = 0

    async def run_transaction(self, fn):
        self.attempts += 1
        if self.attempts <= self.conflicts:
            raise WriteConflictError("contention")
        return await super().run_transaction(fn)


def test_allocate_builds_all_three_ids(allocator):
    ids = asyncio.run(allocator.allocate("teams"))
    assert ids.display_id == 1
    assert ids.entity_id == "1000000000000000001"
    assert len(ids.entity_id) == 19
    assert ids.document_key == "20250301120000" + "0000001"


def test_players_live_in_their_own_range(allocator):
    ids = asyncio.run(allocator.allocate("players"))
    assert ids.entity_id == "2000000000000000001"
    assert sequence_from_entity_id("players", ids.entity_id) == 1


def test_counters_are_per_entity_type(allocator):
    async def go():
        await allocator.next_value("teams")
        await allocator.next_value("teams")
        return await allocator.next_value("players"), await allocator.current_value("teams")

    assert asyncio.run(go()) == (1, 2)


def test_concurrent_allocations_never_repeat(allocator):
    async def go():
        return await asyncio.gather(*(allocator.next_value("matches") for _ in range(25)))

    values = asyncio.run(go())
    assert sorted(values) == list(range(1, 26))


def test_new_display_id_sorts_by_creation(allocator):
    async def go():
        return [await allocator.new_display_id("matches") for _ in range(3)]

    keys = asyncio.run(go())
    assert keys == sorted(keys)
    assert all(len(k) == 21 for k in keys)


def test_conflicts_are_retried():
    store = ConflictingStore(conflicts=2)
    alloc = SequenceAllocator(store, max_retries=3, retry_base_seconds=0.0, clock=fixed_clock)
    assert asyncio.run(alloc.next_value("teams")) == 1
    assert store.attempts == 3


def test_persistent_conflict_surfaces_after_retries():
    store = ConflictingStore(conflicts=100)
    alloc = SequenceAllocator(store, max_retries=2, retry_base_seconds=0.0, clock=fixed_clock)
    with pytest.raises(SequenceExhaustedError):
        asyncio.run(alloc.next_value("teams"))
    assert store.attempts == 2


def test_ensure_at_least_never_lowers(allocator):
    async def go():
        raised = await allocator.ensure_at_least("teams", 7)
        kept = await allocator.ensure_at_least("teams", 3)
        nxt = await allocator.next_value("teams")
        return raised, kept, nxt

    assert asyncio.run(go()) == (7, 7, 8)


def test_reset_all(allocator):
    async def go():
        await allocator.next_value("players")
        await allocator.reset_all()
        return await allocator.next_value("players")

    assert asyncio.run(go()) == 1


def test_unknown_entity_type(allocator):
    with pytest.raises(ValueError):
        asyncio.run(allocator.next_value("umpires"))
    with pytest.raises(ValueError):
        entity_id_for("players", 0)
