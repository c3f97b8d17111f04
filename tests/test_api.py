# tests/test_api.py
import asyncio

import pytest
from fastapi.testclient import TestClient

import main
from cricket_api.config import COLLECTIONS
from cricket_api.documents import default_player_document
from cricket_api.migration import MigrationOrchestrator
from cricket_api.sequences import AllocatedId
from cricket_api.source import parse_corpus
from cricket_api.store import MemoryStore, StoreUnavailableError

from conftest import fixed_clock


class DownStore(MemoryStore):
    async def get(self, collection, filters=None, limit=None):
        raise StoreUnavailableError("deadline exceeded")

    async def get_document(self, collection, doc_id):
        raise StoreUnavailableError("deadline exceeded")


@pytest.fixture
def seeded(store, options, falcons_eagles, full_scorecard):
    matches, _ = parse_corpus([falcons_eagles, full_scorecard])
    asyncio.run(MigrationOrchestrator(store, options, clock=fixed_clock).run(matches))
    return store


@pytest.fixture
def client(seeded):
    main.app.dependency_overrides[main.get_store] = lambda: seeded
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def _ids(store, collection, id_field):
    return {d["name"]: d[id_field] for d in store.dump(collection).values()}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_list_players_is_cached(client):
    first = client.get("/api/players").json()
    second = client.get("/api/players").json()

    assert first["source"] == "store"
    assert second["source"] == "cache"
    assert first["count"] == 4
    assert [p["name"] for p in first["data"]] == ["A Kumar", "Dev Mehta", "Ravi Patel", "Sunil Joshi"]


def test_list_players_by_team(client, seeded):
    falcons = _ids(seeded, COLLECTIONS["teams"], "teamId")["Falcons"]
    body = client.get("/api/players", params={"teamId": falcons}).json()
    assert [p["name"] for p in body["data"]] == ["A Kumar", "Sunil Joshi"]

    body = client.get("/api/players", params={"teamId": falcons, "limit": 1}).json()
    assert body["count"] == 1


def test_limit_is_bounded(client):
    assert client.get("/api/players", params={"limit": 0}).status_code == 422


def test_get_player_by_id_and_display_id(client, seeded):
    kumar = _ids(seeded, COLLECTIONS["players"], "playerId")["A Kumar"]
    by_id = client.get(f"/api/players/{kumar}").json()["data"]
    by_display = client.get("/api/players/1").json()["data"]

    assert by_id["playerId"] == kumar
    assert by_display["playerId"] == kumar
    assert by_id["careerStats"]["batting"]["runs"] == 75


def test_unknown_ids_are_404(client):
    assert client.get("/api/players/2000000000000000777").status_code == 404
    assert client.get("/api/teams/99").status_code == 404
    assert client.get("/api/matches/not-a-match").status_code == 404


def test_teams(client, seeded):
    body = client.get("/api/teams").json()
    assert [t["name"] for t in body["data"]] == ["Eagles", "Falcons"]

    falcons = _ids(seeded, COLLECTIONS["teams"], "teamId")["Falcons"]
    team = client.get(f"/api/teams/{falcons}").json()["data"]
    assert team["teamStats"]["wins"] == 2
    assert team["captain"]["name"] == "A Kumar"


def test_matches_newest_first(client, seeded):
    body = client.get("/api/matches").json()
    assert [m["externalReferenceId"] for m in body["data"]] == ["m-002", "m-001"]

    eagles = _ids(seeded, COLLECTIONS["teams"], "teamId")["Eagles"]
    assert client.get("/api/matches", params={"teamId": eagles}).json()["count"] == 2
    assert client.get("/api/matches", params={"teamId": "1000000000000000999"}).json()["count"] == 0

    match = client.get("/api/matches/2").json()["data"]
    assert match["externalReferenceId"] == "m-002"


def test_duplicates_and_merge(client, seeded):
    dup = default_player_document("Ravi  Patel.", AllocatedId(40, "2000000000000000040", "k40"), now=fixed_clock())
    asyncio.run(seeded.set(COLLECTIONS["players"], dup["playerId"], dup))
    patel = _ids(seeded, COLLECTIONS["players"], "playerId")["Ravi Patel"]

    # Warm the cache so the merge has something to invalidate
    assert client.get("/api/players").json()["count"] == 5

    groups = client.get("/api/players/duplicates").json()
    assert groups["count"] == 1
    assert [p["playerId"] for p in groups["groups"][0]] == [patel, dup["playerId"]]

    resp = client.post("/api/players/merge", json={"sourceId": dup["playerId"], "targetId": patel})
    assert resp.status_code == 200
    assert resp.json()["result"]["targetId"] == patel

    after = client.get("/api/players").json()
    assert after["source"] == "store"
    assert after["count"] == 4


def test_merge_conflicts(client, seeded):
    patel = _ids(seeded, COLLECTIONS["players"], "playerId")["Ravi Patel"]
    resp = client.post("/api/players/merge", json={"sourceId": patel, "targetId": patel})
    assert resp.status_code == 409

    resp = client.post("/api/players/merge", json={"sourceId": "", "targetId": patel})
    assert resp.status_code == 422


def test_store_outage_is_503():
    main.app.dependency_overrides[main.get_store] = lambda: DownStore()
    try:
        resp = TestClient(main.app).get("/api/teams")
    finally:
        main.app.dependency_overrides.clear()
    assert resp.status_code == 503
    assert "unavailable" in resp.json()["detail"]
