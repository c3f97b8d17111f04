# cricket_api/validation.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List

from cricket_api.models import MATCH_STATUSES, PLAYER_ROLES, RESULT_TYPES

ENTITY_ID_RE = re.compile(r"^\d{19}$")


class DocumentValidationError(Exception):
    """Raised when a constructed document fails field checks; nothing is written."""

    def __init__(self, collection: str, key: str, errors: List[str]) -> None:
        self.collection = collection
        self.key = key
        self.errors = errors
        super().__init__(f"{collection}/{key}: " + "; ".join(errors))


def _is_entity_id(v: Any) -> bool:
    return isinstance(v, str) and bool(ENTITY_ID_RE.match(v))


def _non_empty(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def player_errors(doc: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    if not _is_entity_id(doc.get("playerId")):
        errors.append("playerId must be a 19-digit numeric string")
    if not isinstance(doc.get("displayId"), int) or doc.get("displayId", 0) <= 0:
        errors.append("displayId must be a positive integer")
    if not _non_empty(doc.get("name")):
        errors.append("name is required")
    if doc.get("role") not in PLAYER_ROLES:
        errors.append(f"role must be one of: {', '.join(PLAYER_ROLES)}")

    stats = doc.get("careerStats")
    if not isinstance(stats, dict):
        errors.append("careerStats is required")
    else:
        for block in ("batting", "bowling", "fielding", "overall"):
            if not isinstance(stats.get(block), dict):
                errors.append(f"careerStats.{block} is required")
        overall = stats.get("overall") or {}
        wp = overall.get("winPercentage", 0)
        if not (0 <= wp <= 100):
            errors.append("careerStats.overall.winPercentage must be within 0-100")
        avg = (stats.get("batting") or {}).get("average", 0)
        if avg is None or avg != avg or avg < 0:
            errors.append("careerStats.batting.average must be a non-negative number")

    for key in ("recentMatches", "recentTeams", "achievements"):
        if not isinstance(doc.get(key, []), list):
            errors.append(f"{key} must be a list")
    return errors


def team_errors(doc: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    if not _is_entity_id(doc.get("teamId")):
        errors.append("teamId must be a 19-digit numeric string")
    if not _non_empty(doc.get("name")):
        errors.append("name is required")
    if not _non_empty(doc.get("shortName")):
        errors.append("shortName is required")
    if not isinstance(doc.get("players", []), list):
        errors.append("players must be a list")
    if doc.get("captainId") is not None and not _is_entity_id(doc.get("captainId")):
        errors.append("captainId must be null or a 19-digit numeric string")

    stats = doc.get("teamStats") or {}
    played = stats.get("matchesPlayed", 0)
    wp = stats.get("winPercentage", 0)
    if not (0 <= wp <= 100):
        errors.append("teamStats.winPercentage must be within 0-100")
    if played == 0 and wp != 0:
        errors.append("teamStats.winPercentage must be 0 when no matches played")
    return errors


def match_errors(doc: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    if not _is_entity_id(doc.get("matchId")):
        errors.append("matchId must be a 19-digit numeric string")
    if not _non_empty(doc.get("externalReferenceId")):
        errors.append("externalReferenceId is required")
    if doc.get("status") not in MATCH_STATUSES:
        errors.append(f"status must be one of: {', '.join(MATCH_STATUSES)}")
    if not isinstance(doc.get("scheduledDate"), datetime):
        errors.append("scheduledDate must be a timestamp")

    team_ids = []
    for tk in ("team1", "team2"):
        side = doc.get(tk)
        if not isinstance(side, dict):
            errors.append(f"{tk} is required")
            continue
        if not _is_entity_id(side.get("id")):
            errors.append(f"{tk}.id must be a 19-digit numeric string")
        if not isinstance(side.get("players", []), list):
            errors.append(f"{tk}.players must be a list")
        team_ids.append(side.get("id"))
    if len(team_ids) == 2 and team_ids[0] == team_ids[1]:
        errors.append("team1 and team2 must be different teams")

    toss = doc.get("toss")
    if toss is not None and toss.get("decision") not in ("bat", "bowl", None):
        errors.append("toss.decision must be bat or bowl")

    result = doc.get("result")
    if not isinstance(result, dict):
        errors.append("result is required")
    else:
        rtype = result.get("resultType")
        winner = result.get("winnerTeamId")
        if rtype not in RESULT_TYPES:
            errors.append(f"result.resultType must be one of: {', '.join(RESULT_TYPES)}")
        elif rtype == "normal":
            # null winner is only legal when explicitly flagged as unresolved
            if winner is None:
                if result.get("winnerResolved", True):
                    errors.append("result.winnerTeamId is required for a normal result")
            elif winner not in team_ids:
                errors.append("result.winnerTeamId must be team1.id or team2.id")
        elif winner is not None:
            errors.append(f"result.winnerTeamId must be null for a {rtype} result")
    return errors


_CHECKS = {
    "players": (player_errors, "playerId"),
    "teams": (team_errors, "teamId"),
    "matches": (match_errors, "matchId"),
}


def validate_document(kind: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    """Return `doc` unchanged or raise DocumentValidationError with field-level detail."""
    check, key_field = _CHECKS[kind]
    errors = check(doc)
    if errors:
        raise DocumentValidationError(kind, str(doc.get(key_field)), errors)
    return doc
