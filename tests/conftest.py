# tests/conftest.py
from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from cricket_api import cache
from cricket_api.migration import MigrationOptions
from cricket_api.resolver import EntityResolver, ResolutionContext
from cricket_api.sequences import SequenceAllocator
from cricket_api.store import MemoryStore

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


FALCONS_EAGLES: Dict[str, Any] = {
    "match_id": "m-001",
    "teams": {"team1": "Falcons", "team2": "Eagles"},
    "date": "2025-02-15",
    "ground": "Riverside Oval",
    "innings": [
        {
            "team": "Falcons",
            "score": "120/6",
            "overs": 20,
            "batting": [{"name": "A Kumar", "runs": 45, "balls": 30, "is_captain": True}],
            "bowling": [],
        },
        {
            "team": "Eagles",
            "score": "95/8",
            "overs": 20,
            "batting": [],
            "bowling": [{"name": "A Kumar", "overs": 4, "runs": 20, "wickets": 2}],
        },
    ],
    "result": {"winner": "Falcons", "margin": "25 runs"},
}


# Both sides bat and bowl; Eagles lose two wickets to Falcons fielders
FULL_SCORECARD: Dict[str, Any] = {
    "match_id": "m-002",
    "teams": ["Falcons", "Eagles"],
    "date": "2025-02-22",
    "toss": {"winner": "Eagles", "decision": "fielding"},
    "innings": [
        {
            "team": "Falcons",
            "score": "150/4",
            "overs": "20.0",
            "batting": [
                {"name": "A Kumar", "runs": 30, "balls": 22, "how_out": "c Ravi Patel b Dev Mehta", "is_captain": True},
                {"name": "Sunil Joshi", "runs": "62", "balls": "40", "fours": 6, "sixes": 2,
                 "how_out": {"type": "not out"}, "is_wicket_keeper": True},
            ],
            "bowling": [{"name": "Dev Mehta", "overs": "4", "runs": 28, "wickets": 1, "is_captain": True}],
            "fall_of_wickets": [{"score": 48, "wicket": 1, "player": "A Kumar", "over": "6.2"}],
        },
        {
            "team": "Eagles",
            "score": "130/9",
            "overs": "20.0",
            "batting": [
                {"name": "Ravi Patel", "runs": 0, "balls": 3, "how_out": "c Sunil Joshi b A Kumar"},
                {"name": "Dev Mehta", "runs": 41, "balls": 35, "how_out": "run out (Sunil Joshi/A Kumar)"},
            ],
            "bowling": [{"name": "A Kumar", "overs": "4", "runs": 25, "wickets": 3}],
            "fall_of_wickets": [
                {"score": 2, "wicket": 1, "player": "Ravi Patel", "over": "0.3"},
                {"score": 77, "wicket": 2, "player": "Dev Mehta", "over": "12.1"},
            ],
        },
    ],
    "result": {"winner": "Falcons", "margin": "20 runs"},
}


@pytest.fixture(autouse=True)
def _clear_api_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def allocator(store: MemoryStore) -> SequenceAllocator:
    return SequenceAllocator(store, max_retries=3, retry_base_seconds=0.0, clock=fixed_clock)


@pytest.fixture
def resolver(allocator: SequenceAllocator) -> EntityResolver:
    return EntityResolver(allocator, ResolutionContext(), clock=fixed_clock)


@pytest.fixture
def options() -> MigrationOptions:
    return MigrationOptions(batch_size=3, career_batch_size=5, max_concurrency=2, progress=False)


@pytest.fixture
def falcons_eagles() -> Dict[str, Any]:
    return copy.deepcopy(FALCONS_EAGLES)


@pytest.fixture
def full_scorecard() -> Dict[str, Any]:
    return copy.deepcopy(FULL_SCORECARD)
