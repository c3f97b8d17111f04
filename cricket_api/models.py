# cricket_api/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from cricket_api import scoring
from cricket_api.scoring import balls_to_overs

# -----------------------------
# Match result semantics
# -----------------------------
ResultType = Literal["normal", "tie", "abandoned"]
TossDecision = Literal["bat", "bowl"]
PlayerRole = Literal["batsman", "bowler", "all-rounder", "wicket-keeper"]

RESULT_TYPES = ("normal", "tie", "abandoned")
PLAYER_ROLES = ("batsman", "bowler", "all-rounder", "wicket-keeper")
MATCH_STATUSES = ("scheduled", "in-progress", "completed", "cancelled")


# -----------------------------
# Scores
# -----------------------------
@dataclass
class Score:
    runs: int = 0
    wickets: int = 0
    overs: float = 0.0
    declared: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"runs": self.runs, "wickets": self.wickets, "overs": self.overs, "declared": self.declared}


# -----------------------------
# One player's contribution to one match
# -----------------------------
@dataclass
class BattingLine:
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    dismissed: bool = False
    dismissal_type: Optional[str] = None

    @property
    def strike_rate(self) -> float:
        return round(scoring.strike_rate(self.runs, self.balls), 2)


@dataclass
class BowlingLine:
    balls: int = 0
    maidens: int = 0
    runs: int = 0
    wickets: int = 0

    @property
    def economy(self) -> float:
        return round(scoring.economy_rate(self.runs, self.balls), 2)


@dataclass
class FieldingLine:
    catches: int = 0
    run_outs: int = 0
    stumpings: int = 0


@dataclass
class PlayerPerformance:
    """
    Batting, bowling and fielding of one player in one match, merged.
    A player may bat and bowl; fielding credits come from the opposing
    team's dismissals.
    """
    player_id: str
    name: str
    team_id: str
    team_name: str = ""
    batted: bool = False
    bowled: bool = False
    is_captain: bool = False
    is_vice_captain: bool = False
    is_wicket_keeper: bool = False
    batting: BattingLine = field(default_factory=BattingLine)
    bowling: BowlingLine = field(default_factory=BowlingLine)
    fielding: FieldingLine = field(default_factory=FieldingLine)

    def to_document(self, player_snapshot: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "playerId": self.player_id,
            "player": player_snapshot or {"name": self.name},
            "isCaptain": self.is_captain,
            "isViceCaptain": self.is_vice_captain,
            "isWicketKeeper": self.is_wicket_keeper,
            "batting": {
                "runs": self.batting.runs,
                "balls": self.batting.balls,
                "fours": self.batting.fours,
                "sixes": self.batting.sixes,
                "strikeRate": self.batting.strike_rate,
                "dismissed": self.batting.dismissed,
                "dismissalType": self.batting.dismissal_type,
                "didBat": self.batted,
            },
            "bowling": {
                "overs": balls_to_overs(self.bowling.balls),
                "maidens": self.bowling.maidens,
                "runs": self.bowling.runs,
                "wickets": self.bowling.wickets,
                "economy": self.bowling.economy,
                "didBowl": self.bowled,
            },
            "fielding": {
                "catches": self.fielding.catches,
                "runOuts": self.fielding.run_outs,
                "stumpings": self.fielding.stumpings,
            },
        }


# -----------------------------
# Migration reporting
# -----------------------------
@dataclass
class ItemFailure:
    entity_type: str
    key: str
    phase: str
    message: str


@dataclass
class PhaseStats:
    processed: int = 0
    migrated: int = 0
    errors: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "migrated": self.migrated,
            "errors": self.errors,
            "skipped": self.skipped,
        }


@dataclass
class MigrationReport:
    run_id: str
    stats: Dict[str, PhaseStats] = field(default_factory=dict)
    failures: List[ItemFailure] = field(default_factory=list)
    completed_phases: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def for_entity(self, entity_type: str) -> PhaseStats:
        if entity_type not in self.stats:
            self.stats[entity_type] = PhaseStats()
        return self.stats[entity_type]

    def record_failure(self, entity_type: str, key: str, phase: str, message: str) -> None:
        self.for_entity(entity_type).errors += 1
        self.failures.append(ItemFailure(entity_type=entity_type, key=key, phase=phase, message=message))

    @property
    def has_errors(self) -> bool:
        return any(s.errors > 0 for s in self.stats.values())

    @property
    def exit_code(self) -> int:
        return 1 if self.has_errors else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "completedPhases": list(self.completed_phases),
            "stats": {k: v.to_dict() for k, v in self.stats.items()},
            "failures": [f.__dict__ for f in self.failures],
            "warnings": list(self.warnings),
        }

    def summary_lines(self) -> List[str]:
        lines = [f"Migration {self.run_id}"]
        for entity_type, s in self.stats.items():
            lines.append(
                f"  {entity_type:<12} processed={s.processed} migrated={s.migrated} "
                f"skipped={s.skipped} errors={s.errors}"
            )
        for f in self.failures[:20]:
            lines.append(f"  ! [{f.phase}] {f.entity_type} {f.key}: {f.message}")
        if len(self.failures) > 20:
            lines.append(f"  ... and {len(self.failures) - 20} more failures")
        return lines
