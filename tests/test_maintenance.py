# tests/test_maintenance.py
import asyncio

import pytest

from cricket_api.config import COLLECTIONS
from cricket_api.documents import default_player_document
from cricket_api.maintenance import (
    MergeError,
    find_duplicate_players,
    fold_legacy_squads,
    merge_players,
    replace_player_refs,
    validate_documents,
)
from cricket_api.migration import MigrationOrchestrator
from cricket_api.sequences import AllocatedId
from cricket_api.source import parse_corpus

from conftest import fixed_clock

TEAMS = COLLECTIONS["teams"]
PLAYERS = COLLECTIONS["players"]
MATCHES = COLLECTIONS["matches"]
SQUADS = COLLECTIONS["matchSquads"]


async def _seed(store, options, raws):
    matches, _ = parse_corpus(raws)
    await MigrationOrchestrator(store, options, clock=fixed_clock).run(matches)
    return {d["name"]: d for d in store.dump(PLAYERS).values()}, {d["name"]: d for d in store.dump(TEAMS).values()}


def _player(name, display_id, **extra):
    doc = default_player_document(name, AllocatedId(display_id, str(2 * 10 ** 18 + display_id), f"k{display_id}"))
    doc.update(extra)
    return doc


# -----------------------------
# Duplicates
# -----------------------------
def test_find_duplicate_players(store):
    docs = [
        _player("A.Kumar", 3),
        _player("A Kumar", 1),
        _player("Ravi Patel", 2),
        _player("akumar", 4, isActive=False),
    ]

    async def go():
        for d in docs:
            await store.set(PLAYERS, d["playerId"], d)
        return await find_duplicate_players(store)

    groups = asyncio.run(go())
    assert len(groups) == 1
    assert [d["displayId"] for d in groups[0]] == [1, 3]


def test_replace_player_refs_is_recursive():
    doc = {
        "playerIds": ["p1", "p2"],
        "team1": {"players": [{"playerId": "p1", "player": {"playerId": "p1"}}]},
        "fallOfWickets": {"team1": [{"dismissal": {"fielder": {"playerId": "p1"}}}]},
        "title": "p1 vs p2",
    }
    out, hits = replace_player_refs(doc, "p1", "p9")
    assert hits == 4
    assert out["playerIds"] == ["p9", "p2"]
    assert out["fallOfWickets"]["team1"][0]["dismissal"]["fielder"]["playerId"] == "p9"
    assert out["title"] == "p1 vs p2"
    assert doc["playerIds"] == ["p1", "p2"]


# -----------------------------
# Merge
# -----------------------------
def test_merge_rewrites_every_reference(store, options, full_scorecard):
    async def go():
        players, teams = await _seed(store, options, [full_scorecard])
        source, target = players["Dev Mehta"], players["Ravi Patel"]
        result = await merge_players(store, source["playerId"], target["playerId"])
        return players, teams, result

    players, teams, result = asyncio.run(go())
    source_id = players["Dev Mehta"]["playerId"]
    target_id = players["Ravi Patel"]["playerId"]
    eagles_id = teams["Eagles"]["teamId"]

    assert result.failed_keys == []
    assert (result.matches_updated, result.teams_updated) == (1, 1)

    merged = store.dump(PLAYERS)[target_id]
    assert merged["careerStats"]["batting"]["runs"] == 41
    assert merged["careerStats"]["batting"]["matchesPlayed"] == 2
    assert merged["careerStats"]["bowling"]["wickets"] == 1
    assert "Dev Mehta" in merged["sourceNames"]

    retired = store.dump(PLAYERS)[source_id]
    assert retired["isActive"] is False
    assert retired["mergedInto"] == target_id

    match = next(iter(store.dump(MATCHES).values()))
    assert source_id not in match["playerIds"]
    assert match["playerIds"].count(target_id) == 1
    assert len(match["playerIds"]) == 3
    assert match["team2"]["squad"]["captainId"] == target_id

    eagles = store.dump(TEAMS)[eagles_id]
    assert eagles["captainId"] == target_id
    assert eagles["captain"] == {"playerId": target_id, "name": "Ravi Patel"}
    assert [p["playerId"] for p in eagles["players"]] == [target_id]
    entry = eagles["players"][0]
    assert (entry["matchesPlayed"], entry["totalRuns"], entry["totalWickets"]) == (2, 41, 1)
    assert entry["isCaptain"] is True


def test_merge_preconditions(store, options, falcons_eagles):
    async def go():
        players, _ = await _seed(store, options, [falcons_eagles])
        kumar = players["A Kumar"]["playerId"]
        other = _player("A. Kumar", 50)
        await store.set(PLAYERS, other["playerId"], other)

        errors = []
        for src, tgt in ((kumar, kumar), (kumar, "2000000000000000404"), ("2000000000000000404", kumar)):
            try:
                await merge_players(store, src, tgt)
            except MergeError as e:
                errors.append(str(e))

        await merge_players(store, other["playerId"], kumar)
        try:
            await merge_players(store, other["playerId"], kumar)
        except MergeError as e:
            errors.append(str(e))
        return errors

    errors = asyncio.run(go())
    assert len(errors) == 4
    assert "itself" in errors[0]
    assert "inactive" in errors[3]


def test_merged_player_leaves_duplicate_groups(store):
    a, b = _player("A Kumar", 1), _player("A. Kumar", 2)

    async def go():
        await store.set(PLAYERS, a["playerId"], a)
        await store.set(PLAYERS, b["playerId"], b)
        before = await find_duplicate_players(store)
        await merge_players(store, b["playerId"], a["playerId"])
        return before, await find_duplicate_players(store)

    before, after = asyncio.run(go())
    assert len(before) == 1
    assert after == []


# -----------------------------
# Validation
# -----------------------------
def test_validate_documents(store, options, falcons_eagles):
    async def go():
        _, teams = await _seed(store, options, [falcons_eagles])
        clean = await validate_documents(store)

        match_id = next(iter(store.dump(MATCHES)))
        await store.update(TEAMS, teams["Eagles"]["teamId"], {"shortName": ""})
        await store.update(MATCHES, match_id, {"status": "done"})
        return clean, await validate_documents(store)

    clean, problems = asyncio.run(go())
    assert clean == []
    assert [p.collection for p in problems] == ["teams", "matches"]
    assert "shortName is required" in problems[0].errors


# -----------------------------
# Legacy squads
# -----------------------------
def test_fold_legacy_squads(store, options, falcons_eagles):
    async def go():
        players, teams = await _seed(store, options, [falcons_eagles])
        kumar = players["A Kumar"]["playerId"]
        falcons = teams["Falcons"]["teamId"]
        await store.set(SQUADS, "sq1", {
            "matchId": "m-001",
            "teamId": falcons,
            "players": [{"playerId": kumar, "name": "A Kumar", "isCaptain": True, "isWicketKeeper": True}],
            "captain": {"playerId": kumar, "name": "A Kumar"},
            "viceCaptain": "Someone Else",
        })
        await store.set(SQUADS, "sq2", {"matchId": "m-001", "teamId": "1000000000000000999"})
        await store.set(SQUADS, "sq3", {"matchId": "m-404", "teamId": falcons})
        await store.set(SQUADS, "sq4", {"teamId": falcons})
        return kumar, await fold_legacy_squads(store, batch_size=2)

    kumar, report = asyncio.run(go())
    stats = report.stats["squads"]
    assert (stats.processed, stats.migrated, stats.skipped, stats.errors) == (4, 1, 2, 1)
    assert sorted(store.dump(SQUADS)) == ["sq2", "sq3", "sq4"]

    match = next(iter(store.dump(MATCHES).values()))
    squad = match["team1"]["squad"]
    assert match["team1"]["squadId"] == "sq1"
    assert (squad["captainName"], squad["captainId"]) == ("A Kumar", kumar)
    assert (squad["viceCaptainName"], squad["viceCaptainId"]) == ("Someone Else", None)
    assert squad["wicketKeeperId"] == kumar
    assert squad["players"][0]["name"] == "A Kumar"
    assert match["team2"]["squadId"] != "sq2"


def test_fold_with_no_squads(store):
    report = asyncio.run(fold_legacy_squads(store))
    assert report.stats["squads"].processed == 0
    assert report.exit_code == 0
