# tests/test_migration.py
import asyncio

import pytest

from cricket_api.config import COLLECTIONS, DEFAULT_TOURNAMENT_ID
from cricket_api.documents import default_player_document, default_team_document
from cricket_api.migration import (
    PHASES,
    MigrationError,
    MigrationOptions,
    MigrationOrchestrator,
    recalculate_team_stats,
)
from cricket_api.models import ItemFailure
from cricket_api.resolver import ResolutionContext
from cricket_api.sequences import AllocatedId
from cricket_api.source import parse_corpus

from conftest import fixed_clock

TEAMS = COLLECTIONS["teams"]
PLAYERS = COLLECTIONS["players"]
MATCHES = COLLECTIONS["matches"]


async def _migrate(store, options, raws, ingest_failures=()):
    matches, failures = parse_corpus(raws)
    orchestrator = MigrationOrchestrator(store, options, clock=fixed_clock)
    return await orchestrator.run(matches, list(failures) + list(ingest_failures), run_id="test-run")


def _migrate_once(store, options, raws, **kw):
    return asyncio.run(_migrate(store, options, raws, **kw))


def _by_name(store, collection):
    return {d["name"]: d for d in store.dump(collection).values()}


# -----------------------------
# Full runs
# -----------------------------
def test_single_match_end_to_end(store, options, falcons_eagles):
    report = _migrate_once(store, options, [falcons_eagles])

    assert report.exit_code == 0
    assert report.completed_phases == list(PHASES)
    assert report.stats["matches"].migrated == 1
    assert report.stats["teams"].migrated == 2
    assert report.stats["players"].migrated == 1

    teams = _by_name(store, TEAMS)
    falcons, eagles = teams["Falcons"], teams["Eagles"]
    assert falcons["teamId"] == "1000000000000000001"
    assert eagles["teamId"] == "1000000000000000002"
    assert falcons["teamStats"] == {"matchesPlayed": 1, "wins": 1, "losses": 0, "draws": 0, "winPercentage": 100.0}
    assert eagles["teamStats"]["losses"] == 1
    assert falcons["recentMatches"][0]["opponent"] == "Eagles"
    assert falcons["recentMatches"][0]["result"] == "Won"

    kumar = _by_name(store, PLAYERS)["A Kumar"]
    assert kumar["playerId"] == "2000000000000000001"
    assert kumar["careerStats"]["batting"]["runs"] == 45
    assert kumar["careerStats"]["bowling"]["wickets"] == 2
    assert kumar["careerStats"]["overall"]["wins"] == 1
    assert kumar["teamIds"] == [falcons["teamId"]]
    assert kumar["preferredTeamId"] == falcons["teamId"]
    assert kumar["recentTeams"][0]["teamName"] == "Falcons"

    # Captains: Falcons from the match squad, Eagles had nobody
    assert falcons["captain"] == {"playerId": kumar["playerId"], "name": "A Kumar"}
    assert eagles["captainId"] is None
    assert eagles["captain"]["name"] == "TBD"

    # Rosters
    assert [p["playerId"] for p in falcons["players"]] == [kumar["playerId"]]
    assert falcons["players"][0]["isCaptain"] is True
    assert falcons["players"][0]["totalRuns"] == 45
    assert eagles["players"] == []

    match = next(iter(store.dump(MATCHES).values()))
    assert match["matchId"] == "1000000000000000001"
    assert "innings" in match["team1"] and "innings" in match["team2"]
    assert DEFAULT_TOURNAMENT_ID in store.dump(COLLECTIONS["tournaments"])

    checkpoint = store.dump(COLLECTIONS["migrationState"])["latest"]
    assert checkpoint["runId"] == "test-run"
    assert checkpoint["lastCompletedPhase"] == "team_stats"
    assert checkpoint["counts"]["matches"]["migrated"] == 1


def test_rerun_is_idempotent(store, options, falcons_eagles):
    async def go():
        await _migrate(store, options, [falcons_eagles])
        before = (store.dump(TEAMS), store.dump(PLAYERS), store.dump(MATCHES))
        report = await _migrate(store, options, [falcons_eagles])
        return before, report

    (teams, players, matches), report = asyncio.run(go())

    assert report.stats["matches"].skipped == 1
    assert report.stats["matches"].migrated == 0
    assert report.stats["teams"].skipped == 2
    assert store.dump(MATCHES) == matches
    assert store.dump(PLAYERS) == players
    assert store.dump(TEAMS) == teams


def test_second_match_accumulates(store, options, falcons_eagles, full_scorecard):
    report = _migrate_once(store, options, [falcons_eagles, full_scorecard])
    assert report.exit_code == 0

    teams = _by_name(store, TEAMS)
    players = _by_name(store, PLAYERS)
    falcons, eagles = teams["Falcons"], teams["Eagles"]

    assert falcons["teamStats"]["wins"] == 2
    assert eagles["teamStats"]["losses"] == 2
    assert set(players) == {"A Kumar", "Sunil Joshi", "Ravi Patel", "Dev Mehta"}

    kumar = players["A Kumar"]["careerStats"]
    assert kumar["batting"]["runs"] == 75
    assert kumar["bowling"]["wickets"] == 5
    assert kumar["fielding"]["runOuts"] == 1
    assert kumar["overall"]["matchesPlayed"] == 2
    assert [m["runs"] for m in players["A Kumar"]["recentMatches"]] == [30, 45]

    joshi = players["Sunil Joshi"]
    assert joshi["role"] == "wicket-keeper"
    assert joshi["careerStats"]["batting"]["notOuts"] == 1
    assert joshi["careerStats"]["fielding"]["catches"] == 1
    assert joshi["achievements"][0]["type"] == "half_century"
    assert players["Ravi Patel"]["careerStats"]["batting"]["ducks"] == 1

    assert eagles["captain"]["name"] == "Dev Mehta"
    assert [p["player"]["name"] for p in falcons["players"]] == ["A Kumar", "Sunil Joshi"]
    assert falcons["players"][0]["matchesPlayed"] == 2


def test_unresolved_winner_is_warning_and_draw(store, options, falcons_eagles):
    falcons_eagles["result"]["winner"] = "Hawks"
    report = _migrate_once(store, options, [falcons_eagles])

    assert report.exit_code == 0
    assert any("Hawks" in w for w in report.warnings)
    teams = _by_name(store, TEAMS)
    assert teams["Falcons"]["teamStats"]["draws"] == 1
    assert teams["Eagles"]["teamStats"]["draws"] == 1
    assert teams["Falcons"]["recentMatches"][0]["result"] == "Unknown"


def _two_batters(first, second):
    return {
        "match_id": "m-010",
        "teams": {"team1": "Falcons", "team2": "Eagles"},
        "date": "2025-03-01",
        "innings": [
            {"team": "Falcons", "score": "150/4", "overs": 20, "batting": [{"name": first, "runs": 30, "balls": 20}]},
            {"team": "Eagles", "score": "120/9", "overs": 20, "batting": [{"name": second, "runs": 12, "balls": 10}]},
        ],
        "result": {"winner": "Falcons", "margin": "30 runs"},
    }


def test_opponents_sharing_a_word_stay_separate(store, options):
    report = _migrate_once(store, options, [_two_batters("A Kumar", "A Singh")])
    assert report.exit_code == 0

    players = _by_name(store, PLAYERS)
    assert set(players) == {"A Kumar", "A Singh"}
    kumar = players["A Kumar"]["careerStats"]
    singh = players["A Singh"]["careerStats"]
    assert (kumar["overall"]["matchesPlayed"], kumar["overall"]["wins"], kumar["overall"]["losses"]) == (1, 1, 0)
    assert (singh["overall"]["matchesPlayed"], singh["overall"]["wins"], singh["overall"]["losses"]) == (1, 0, 1)
    assert kumar["batting"]["matchesPlayed"] == 1
    assert singh["batting"]["runs"] == 12


def test_player_listed_for_both_sides_counts_once(store, options):
    report = _migrate_once(store, options, [_two_batters("A Kumar", "A Kumar")])

    players = _by_name(store, PLAYERS)
    assert list(players) == ["A Kumar"]
    career = players["A Kumar"]["careerStats"]
    assert career["overall"]["matchesPlayed"] == 1
    assert career["batting"]["matchesPlayed"] == 1
    assert career["batting"]["runs"] == 30
    assert any("both sides" in w for w in report.warnings)


def test_new_alias_is_saved_on_stored_player(store, options, full_scorecard):
    later = {
        "match_id": "m-003",
        "teams": {"team1": "Falcons", "team2": "Eagles"},
        "date": "2025-03-01",
        "innings": [
            {"team": "Eagles", "score": "80/3", "overs": 10, "batting": [{"name": "R. Patel", "runs": 20, "balls": 15}]},
            {"team": "Falcons", "score": "70/5", "overs": 10, "batting": []},
        ],
        "result": {"winner": "Eagles", "margin": "10 runs"},
    }

    async def go():
        await _migrate(store, options, [full_scorecard])
        report = await _migrate(store, options, [later])
        return report, await ResolutionContext.from_store(store)

    report, ctx = asyncio.run(go())
    patel = _by_name(store, PLAYERS)["Ravi Patel"]

    assert report.stats["aliases"].migrated == 1
    assert patel["sourceNames"] == ["Ravi Patel", "R. Patel"]
    assert patel["careerStats"]["batting"]["runs"] == 20
    assert ctx.player_index["r patel"] == patel["playerId"]


# -----------------------------
# Failures
# -----------------------------
def test_item_failure_does_not_stop_the_run(store, options, falcons_eagles, full_scorecard):
    full_scorecard["innings"][0]["score"] = "abc"
    report = _migrate_once(store, options, [falcons_eagles, full_scorecard])

    assert report.exit_code == 1
    assert report.stats["matches"].errors == 1
    assert report.stats["matches"].migrated == 1
    assert report.failures[0].key == "m-002"
    assert report.completed_phases == list(PHASES)
    assert len(store.dump(MATCHES)) == 1


def test_ingest_failures_are_reported(store, options, falcons_eagles):
    bad = ItemFailure("matches", "#7", "ingest", "record is not an object")
    report = _migrate_once(store, options, [falcons_eagles], ingest_failures=[bad])
    assert report.exit_code == 1
    assert report.stats["matches"].processed == 2
    assert report.stats["matches"].migrated == 1


# -----------------------------
# Sequences / wipe
# -----------------------------
def test_sequences_floor_against_existing_data(store, options, falcons_eagles):
    hawks = default_team_document("Hawks", AllocatedId(5, "1000000000000000005", "k5"), now=fixed_clock())
    asyncio.run(store.set(TEAMS, hawks["teamId"], hawks))

    _migrate_once(store, options, [falcons_eagles])
    teams = _by_name(store, TEAMS)
    assert teams["Falcons"]["teamId"] == "1000000000000000006"
    assert teams["Falcons"]["displayId"] == 6
    assert teams["Hawks"]["teamStats"]["matchesPlayed"] == 0


def test_wipe_starts_from_scratch(store, falcons_eagles):
    stale = default_player_document("Old Timer", AllocatedId(9, "2000000000000000009", "k9"), now=fixed_clock())
    options = MigrationOptions(wipe=True, batch_size=3, max_concurrency=2, progress=False)

    async def go():
        await store.set(PLAYERS, stale["playerId"], stale)
        await store.set(COLLECTIONS["sequences"], "players", {"currentValue": 9})
        return await _migrate(store, options, [falcons_eagles])

    asyncio.run(go())
    players = _by_name(store, PLAYERS)
    assert list(players) == ["A Kumar"]
    assert players["A Kumar"]["playerId"] == "2000000000000000001"
    assert _by_name(store, TEAMS)["Falcons"]["teamId"] == "1000000000000000001"


# -----------------------------
# Resume / standalone phases
# -----------------------------
def test_resume_skips_completed_phases(store):
    options = MigrationOptions(resume=True, progress=False)

    async def go():
        await store.set(COLLECTIONS["migrationState"], "latest", {"runId": "old", "lastCompletedPhase": "careers"})
        return await MigrationOrchestrator(store, options, clock=fixed_clock).run([])

    report = asyncio.run(go())
    assert report.completed_phases == ["rosters", "team_stats"]


def test_resume_after_full_run_does_nothing(store, options, falcons_eagles):
    resume = MigrationOptions(resume=True, progress=False)

    async def go():
        await _migrate(store, options, [falcons_eagles])
        return await _migrate(store, resume, [falcons_eagles])

    report = asyncio.run(go())
    assert report.completed_phases == []


def test_resume_rebuilds_missing_innings(store, options, falcons_eagles):
    async def go():
        orchestrator = MigrationOrchestrator(store, options, clock=fixed_clock)
        matches, _ = parse_corpus([falcons_eagles])
        await orchestrator.run_phases(PHASES[: PHASES.index("captains") + 1], matches)

        resumed = MigrationOrchestrator(store, MigrationOptions(resume=True, progress=False), clock=fixed_clock)
        return await resumed.run(matches)

    report = asyncio.run(go())
    assert report.completed_phases == ["innings", "careers", "rosters", "team_stats"]
    assert report.stats["innings"].migrated == 1
    match = next(iter(store.dump(MATCHES).values()))
    assert match["team1"]["innings"]["totalRuns"] == 120
    # No extra players or teams were minted while rebuilding
    assert len(store.dump(PLAYERS)) == 1
    assert len(store.dump(TEAMS)) == 2


def test_unknown_checkpoint_phase(store):
    options = MigrationOptions(resume=True, progress=False)

    async def go():
        await store.set(COLLECTIONS["migrationState"], "latest", {"lastCompletedPhase": "squads"})
        await MigrationOrchestrator(store, options, clock=fixed_clock).run([])

    with pytest.raises(MigrationError):
        asyncio.run(go())


def test_unknown_phase_name(store, options):
    with pytest.raises(MigrationError):
        asyncio.run(MigrationOrchestrator(store, options).run_phases(["careers", "bogus"]))


def test_recalculate_team_stats_restores_counts(store, options, falcons_eagles):
    async def go():
        await _migrate(store, options, [falcons_eagles])
        falcons_id = _by_name(store, TEAMS)["Falcons"]["teamId"]
        await store.update(TEAMS, falcons_id, {"teamStats.wins": 40, "teamStats.matchesPlayed": 40})
        report = await recalculate_team_stats(store, options)
        return falcons_id, report

    falcons_id, report = asyncio.run(go())
    assert report.completed_phases == ["team_stats"]
    assert store.dump(TEAMS)[falcons_id]["teamStats"]["wins"] == 1
    assert store.dump(TEAMS)[falcons_id]["teamStats"]["matchesPlayed"] == 1
    # The migration checkpoint is untouched
    assert store.dump(COLLECTIONS["migrationState"])["latest"]["completedPhases"] == list(PHASES)
