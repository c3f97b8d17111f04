# cricket_api/documents.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cricket_api.aggregates import empty_career_stats, empty_team_stats
from cricket_api.config import (
    DEFAULT_SEASON,
    DEFAULT_TOURNAMENT_ID,
    DEFAULT_TOURNAMENT_NAME,
    DEFAULT_TOURNAMENT_SHORT_NAME,
    DEFAULT_VENUE,
)
from cricket_api.matching import normalize_name
from cricket_api.sequences import AllocatedId

TBD = "TBD"


class _Unset:
    """Marker for 'field not provided' (distinct from an explicit None)."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def clean_document(value: Any) -> Any:
    """
    Recursively drop UNSET fields / list items before a write.
    None is a real value and is kept.
    """
    if isinstance(value, dict):
        return {k: clean_document(v) for k, v in value.items() if v is not UNSET}
    if isinstance(value, (list, tuple)):
        return [clean_document(v) for v in value if v is not UNSET]
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def team_short_name(name: str) -> str:
    """Initials of the first three words: "Royal Challengers Bangalore" -> "RCB"."""
    words = [w for w in str(name or "").split() if w[:1].isalnum()]
    if not words:
        return ""
    return "".join(w[0] for w in words[:3]).upper()


def captain_placeholder() -> Dict[str, Any]:
    return {"playerId": None, "name": TBD}


def default_team_document(name: str, ids: AllocatedId, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utc_now()
    return {
        "teamId": ids.entity_id,
        "displayId": ids.display_id,
        "documentKey": ids.document_key,
        "name": name.strip(),
        "normalizedName": normalize_name(name),
        "shortName": team_short_name(name),
        "homeGround": DEFAULT_VENUE,
        "tournamentId": DEFAULT_TOURNAMENT_ID,
        "captainId": None,
        "captain": captain_placeholder(),
        "viceCaptainId": None,
        "viceCaptain": None,
        "players": [],
        "teamStats": empty_team_stats(),
        "recentMatches": [],
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    }


def default_player_document(name: str, ids: AllocatedId, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utc_now()
    return {
        "playerId": ids.entity_id,
        "displayId": ids.display_id,
        "documentKey": ids.document_key,
        "name": name.strip(),
        "normalizedName": normalize_name(name),
        "sourceNames": [name.strip()],
        "role": "batsman",
        "battingStyle": "RHB",
        "bowlingStyle": None,
        "preferredTeamId": None,
        "teamIds": [],
        "careerStats": empty_career_stats(),
        "achievements": [],
        "recentMatches": [],
        "recentTeams": [],
        "isActive": True,
        "mergedInto": None,
        "createdAt": now,
        "updatedAt": now,
    }


def default_tournament_document(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utc_now()
    return {
        "tournamentId": DEFAULT_TOURNAMENT_ID,
        "displayId": 1,
        "name": DEFAULT_TOURNAMENT_NAME,
        "shortName": DEFAULT_TOURNAMENT_SHORT_NAME,
        "season": str(DEFAULT_SEASON),
        "status": "ongoing",
        "createdAt": now,
        "updatedAt": now,
    }


def player_snapshot(player_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Point-in-time copy of a player's display fields for embedding."""
    return {
        "playerId": player_doc.get("playerId"),
        "name": player_doc.get("name"),
        "role": player_doc.get("role"),
        "battingStyle": player_doc.get("battingStyle"),
    }

