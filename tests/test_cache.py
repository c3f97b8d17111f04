# tests/test_cache.py
import pytest

from cricket_api import cache


@pytest.fixture
def clock(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(cache, "_clock", lambda: now[0])
    return now


def test_make_key():
    assert cache.make_key("players", None, "1000000000000000003", "") == "players:1000000000000000003"
    assert cache.make_key("teams") == "teams"
    with pytest.raises(ValueError):
        cache.make_key("  ")


def test_entries_expire(clock):
    cache.set("teams", ["Falcons"], ttl_seconds=60)
    assert cache.get("teams") == ["Falcons"]

    clock[0] += 61
    assert cache.get("teams") is None
    assert cache.debug_snapshot() == {}


def test_zero_ttl_is_not_stored(clock):
    cache.set("teams", ["Falcons"], ttl_seconds=0)
    assert cache.get("teams") is None


def test_clear_by_namespace(clock):
    cache.set("players", [1])
    cache.set("players:1000000000000000003", [2])
    cache.set("teams", [3])

    assert cache.clear("players") == 2
    assert cache.get("teams") == [3]
    assert cache.clear() == 1
