# cricket_api/aggregates.py
"""
Career / team aggregate folds.

Folds are additive and NOT idempotent: folding the same match twice doubles
every counter. Callers rebuild from zeroed aggregates when replaying.
Derived values (averages, rates, percentages) are always recomputed from the
counters, never adjusted incrementally.
"""
from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Dict, List, Optional

from cricket_api.config import RECENT_MATCHES_LIMIT, RECENT_TEAMS_LIMIT
from cricket_api.models import BattingLine, BowlingLine, FieldingLine, PlayerPerformance
from cricket_api.scoring import balls_to_overs, economy_rate, strike_rate

BATTING_COUNTERS = ("matchesPlayed", "runs", "ballsFaced", "fours", "sixes", "centuries", "fifties", "ducks", "notOuts")
BOWLING_COUNTERS = ("matchesPlayed", "ballsBowled", "runsConceded", "wickets", "maidens", "fiveWicketHauls", "threeWicketHauls")
FIELDING_COUNTERS = ("catches", "runOuts", "stumpings")
OVERALL_COUNTERS = ("matchesPlayed", "wins", "losses", "draws")


def _r2(x: float) -> float:
    return round(float(x), 2)


# -----------------------------
# Empty aggregates
# -----------------------------
def empty_batting_stats() -> Dict[str, Any]:
    return {
        "matchesPlayed": 0,
        "runs": 0,
        "ballsFaced": 0,
        "fours": 0,
        "sixes": 0,
        "highestScore": 0,
        "average": 0.0,
        "strikeRate": 0.0,
        "centuries": 0,
        "fifties": 0,
        "ducks": 0,
        "notOuts": 0,
    }


def empty_bowling_stats() -> Dict[str, Any]:
    return {
        "matchesPlayed": 0,
        "ballsBowled": 0,
        "oversBowled": 0.0,
        "runsConceded": 0,
        "wickets": 0,
        "maidens": 0,
        "average": 0.0,
        "economyRate": 0.0,
        "strikeRate": 0.0,
        "bestBowling": None,
        "fiveWicketHauls": 0,
        "threeWicketHauls": 0,
    }


def empty_fielding_stats() -> Dict[str, Any]:
    return {"catches": 0, "runOuts": 0, "stumpings": 0}


def empty_overall_stats() -> Dict[str, Any]:
    return {"matchesPlayed": 0, "wins": 0, "losses": 0, "draws": 0, "winPercentage": 0.0}


def empty_career_stats() -> Dict[str, Any]:
    return {
        "batting": empty_batting_stats(),
        "bowling": empty_bowling_stats(),
        "fielding": empty_fielding_stats(),
        "overall": empty_overall_stats(),
    }


def empty_team_stats() -> Dict[str, Any]:
    return {"matchesPlayed": 0, "wins": 0, "losses": 0, "draws": 0, "winPercentage": 0.0}


# -----------------------------
# Derived values
# -----------------------------
def batting_average(runs: int, matches_played: int, not_outs: int) -> float:
    """runs / dismissals; when never dismissed the average is the run total."""
    dismissals = matches_played - not_outs
    if dismissals > 0:
        return runs / dismissals
    return float(runs)


def win_percentage(wins: int, matches_played: int) -> float:
    if matches_played <= 0:
        return 0.0
    return wins / matches_played * 100


def recompute_batting(b: Dict[str, Any]) -> Dict[str, Any]:
    b["average"] = _r2(batting_average(b["runs"], b["matchesPlayed"], b["notOuts"]))
    b["strikeRate"] = _r2(strike_rate(b["runs"], b["ballsFaced"]))
    return b


def recompute_bowling(b: Dict[str, Any]) -> Dict[str, Any]:
    balls = b["ballsBowled"]
    b["oversBowled"] = balls_to_overs(balls)
    b["economyRate"] = _r2(economy_rate(b["runsConceded"], balls))
    b["average"] = _r2(b["runsConceded"] / b["wickets"]) if b["wickets"] > 0 else 0.0
    b["strikeRate"] = _r2(balls / b["wickets"]) if b["wickets"] > 0 else 0.0
    return b


def recompute_overall(o: Dict[str, Any]) -> Dict[str, Any]:
    o["winPercentage"] = _r2(win_percentage(o["wins"], o["matchesPlayed"]))
    return o


# -----------------------------
# Best bowling
# -----------------------------
def make_figure(wickets: int, runs: int) -> Dict[str, Any]:
    return {"wickets": int(wickets), "runs": int(runs), "text": f"{int(wickets)}/{int(runs)}"}


def better_bowling(candidate: Optional[Dict[str, Any]], best: Optional[Dict[str, Any]]) -> bool:
    """More wickets always wins; equal wickets -> fewer runs wins."""
    if candidate is None:
        return False
    if best is None:
        return True
    if candidate["wickets"] != best["wickets"]:
        return candidate["wickets"] > best["wickets"]
    return candidate["runs"] < best["runs"]


def pick_best_bowling(a: Optional[Dict[str, Any]], b: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return copy.deepcopy(b) if better_bowling(b, a) else copy.deepcopy(a)


# -----------------------------
# Per-match folds
# -----------------------------
def fold_batting(stats: Dict[str, Any], line: BattingLine) -> Dict[str, Any]:
    stats["matchesPlayed"] += 1
    stats["runs"] += line.runs
    stats["ballsFaced"] += line.balls
    stats["fours"] += line.fours
    stats["sixes"] += line.sixes
    if not line.dismissed:
        stats["notOuts"] += 1
    stats["highestScore"] = max(stats["highestScore"], line.runs)
    if line.runs >= 100:
        stats["centuries"] += 1
    elif line.runs >= 50:
        stats["fifties"] += 1
    elif line.runs == 0 and line.dismissed:
        stats["ducks"] += 1
    return recompute_batting(stats)


def fold_bowling(stats: Dict[str, Any], line: BowlingLine) -> Dict[str, Any]:
    stats["matchesPlayed"] += 1
    stats["ballsBowled"] += line.balls
    stats["runsConceded"] += line.runs
    stats["wickets"] += line.wickets
    stats["maidens"] += line.maidens
    if line.wickets >= 5:
        stats["fiveWicketHauls"] += 1
    elif line.wickets >= 3:
        stats["threeWicketHauls"] += 1

    figure = make_figure(line.wickets, line.runs)
    if better_bowling(figure, stats.get("bestBowling")):
        stats["bestBowling"] = figure
    return recompute_bowling(stats)


def fold_fielding(stats: Dict[str, Any], line: FieldingLine) -> Dict[str, Any]:
    stats["catches"] += line.catches
    stats["runOuts"] += line.run_outs
    stats["stumpings"] += line.stumpings
    return stats


def fold_result(stats: Dict[str, Any], team_id: str, winner_team_id: Optional[str]) -> Dict[str, Any]:
    """Team win/loss fold; also used for a player's `overall` block."""
    stats["matchesPlayed"] += 1
    if winner_team_id is None:
        stats["draws"] += 1
    elif winner_team_id == team_id:
        stats["wins"] += 1
    else:
        stats["losses"] += 1
    return recompute_overall(stats)


def fold_performance(
    career: Dict[str, Any],
    perf: PlayerPerformance,
    winner_team_id: Optional[str],
) -> Dict[str, Any]:
    """Fold one match into a player's careerStats (mutates and returns it)."""
    if perf.batted:
        fold_batting(career["batting"], perf.batting)
    if perf.bowled:
        fold_bowling(career["bowling"], perf.bowling)
    fold_fielding(career["fielding"], perf.fielding)
    # Substitute fielders earn fielding credit but no appearance
    if perf.batted or perf.bowled:
        fold_result(career["overall"], perf.team_id, winner_team_id)
    return career


# -----------------------------
# Achievements / recency
# -----------------------------
def match_achievements(perf: PlayerPerformance, match_id: str, date: Optional[datetime]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []

    def add(kind: str, title: str, value: Any) -> None:
        out.append({"type": kind, "title": title, "matchId": match_id, "date": date, "value": value})

    if perf.batted:
        runs = perf.batting.runs
        if runs >= 100:
            add("century", f"Century: {runs} runs", runs)
        elif runs >= 50:
            add("half_century", f"Half Century: {runs} runs", runs)

    if perf.bowled:
        w, r = perf.bowling.wickets, perf.bowling.runs
        if w >= 5:
            add("five_wicket_haul", f"Five Wicket Haul: {w}/{r}", f"{w}/{r}")
        elif w >= 3:
            add("three_wicket_haul", f"Three Wicket Haul: {w}/{r}", f"{w}/{r}")

    if perf.fielding.catches >= 3:
        add("multiple_catches", f"Multiple Catches: {perf.fielding.catches} catches", perf.fielding.catches)
    if perf.fielding.run_outs >= 2:
        add("run_out_specialist", f"Run Out Specialist: {perf.fielding.run_outs} run outs", perf.fielding.run_outs)

    return out


def result_label(team_id: str, winner_team_id: Optional[str], result_type: str) -> str:
    if result_type == "tie":
        return "Tied"
    if result_type == "abandoned":
        return "No Result"
    if winner_team_id is None:
        return "Unknown"
    return "Won" if winner_team_id == team_id else "Lost"


def push_recent_match(
    recent: List[Dict[str, Any]],
    entry: Dict[str, Any],
    limit: int = RECENT_MATCHES_LIMIT,
) -> List[Dict[str, Any]]:
    """Newest first, one entry per match, capped."""
    out = [m for m in recent if m.get("matchId") != entry.get("matchId")]
    out.insert(0, entry)
    return out[:limit]


def touch_recent_team(
    recent: List[Dict[str, Any]],
    team_id: str,
    team_name: str,
    when: Optional[datetime],
    limit: int = RECENT_TEAMS_LIMIT,
) -> List[Dict[str, Any]]:
    """Move (or add) a team to the front, bumping its match count; capped."""
    existing = next((t for t in recent if t.get("teamId") == team_id), None)
    rest = [t for t in recent if t.get("teamId") != team_id]

    if existing is None:
        entry = {"teamId": team_id, "teamName": team_name, "lastPlayed": when, "matchesPlayed": 1}
    else:
        entry = dict(existing)
        entry["matchesPlayed"] = int(entry.get("matchesPlayed", 0)) + 1
        entry["lastPlayed"] = when
        entry["teamName"] = team_name or entry.get("teamName")

    return [entry] + rest[: limit - 1]


# -----------------------------
# Merging two careers (duplicate players)
# -----------------------------
def merge_career_stats(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(target) if target else empty_career_stats()
    src = source or empty_career_stats()

    for block, counters in (
        ("batting", BATTING_COUNTERS),
        ("bowling", BOWLING_COUNTERS),
        ("fielding", FIELDING_COUNTERS),
        ("overall", OVERALL_COUNTERS),
    ):
        dst_block = merged.setdefault(block, {})
        src_block = src.get(block) or {}
        for key in counters:
            dst_block[key] = int(dst_block.get(key, 0)) + int(src_block.get(key, 0))

    merged["batting"]["highestScore"] = max(
        int(merged["batting"].get("highestScore", 0)),
        int((src.get("batting") or {}).get("highestScore", 0)),
    )
    merged["bowling"]["bestBowling"] = pick_best_bowling(
        merged["bowling"].get("bestBowling"),
        (src.get("bowling") or {}).get("bestBowling"),
    )

    recompute_batting(merged["batting"])
    recompute_bowling(merged["bowling"])
    recompute_overall(merged["overall"])
    return merged


# -----------------------------
# Role / preferred team
# -----------------------------
def derive_role(career: Dict[str, Any], kept_wicket: bool = False) -> str:
    if kept_wicket:
        return "wicket-keeper"

    bat = career.get("batting") or {}
    bowl = career.get("bowling") or {}
    matches = int((career.get("overall") or {}).get("matchesPlayed", 0))
    if matches == 0:
        return "batsman"

    bowls_regularly = int(bowl.get("matchesPlayed", 0)) * 2 >= matches
    bats_usefully = int(bat.get("matchesPlayed", 0)) > 0 and int(bat.get("runs", 0)) >= 15 * int(bat.get("matchesPlayed", 0))

    if bowls_regularly and bats_usefully:
        return "all-rounder"
    if bowls_regularly:
        return "bowler"
    return "batsman"


def preferred_team(appearances: List[str]) -> Optional[str]:
    """Team with most appearances; ties go to the most recent (later in the list)."""
    if not appearances:
        return None
    counts: Dict[str, int] = {}
    last_seen: Dict[str, int] = {}
    for i, team_id in enumerate(appearances):
        counts[team_id] = counts.get(team_id, 0) + 1
        last_seen[team_id] = i
    return max(counts, key=lambda t: (counts[t], last_seen[t]))
