# cricket_api/maintenance.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from cricket_api.aggregates import derive_role, merge_career_stats
from cricket_api.batching import BatchWriter
from cricket_api.config import COLLECTIONS, MIGRATION_BATCH_SIZE, RECENT_MATCHES_LIMIT, RECENT_TEAMS_LIMIT
from cricket_api.documents import TBD, clean_document, utc_now
from cricket_api.matching import compact_name
from cricket_api.models import MigrationReport
from cricket_api.normalizer import TEAM_KEYS
from cricket_api.store import DocumentStore
from cricket_api.validation import DocumentValidationError, match_errors, player_errors, team_errors

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class MergeError(Exception):
    """Raised when two player records cannot be merged."""
    pass


def _when(value: Any) -> datetime:
    if not isinstance(value, datetime):
        return _EPOCH
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# -----------------------------
# Duplicate detection
# -----------------------------
async def find_duplicate_players(store: DocumentStore) -> List[List[Dict[str, Any]]]:
    """
    Group active players whose names collapse to the same key once case,
    punctuation and whitespace are ignored ("A Kumar", "A.Kumar", "akumar").
    Each group is ordered by displayId so the oldest record comes first.
    """
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for snap in await store.get(COLLECTIONS["players"]):
        doc = snap.data
        if not doc.get("isActive", True):
            continue
        key = compact_name(doc.get("name"))
        if key:
            groups.setdefault(key, []).append(doc)

    out = []
    for key in sorted(groups):
        members = groups[key]
        if len(members) > 1:
            out.append(sorted(members, key=lambda d: int(d.get("displayId") or 0)))
    logger.info("Found %d duplicate player groups", len(out))
    return out


# -----------------------------
# Merge
# -----------------------------
@dataclass
class MergeResult:
    source_id: str
    target_id: str
    matches_updated: int = 0
    teams_updated: int = 0
    failed_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "matchesUpdated": self.matches_updated,
            "teamsUpdated": self.teams_updated,
            "failed": list(self.failed_keys),
        }


def replace_player_refs(value: Any, source_id: str, target_id: str) -> Tuple[Any, int]:
    """
    Rewrite every reference to `source_id` inside a nested document.
    Player ids live in their own 19-digit range, so any string equal to the
    source id is a player reference. Returns (new value, replacements).
    """
    if isinstance(value, dict):
        out, n = {}, 0
        for k, v in value.items():
            out[k], c = replace_player_refs(v, source_id, target_id)
            n += c
        return out, n
    if isinstance(value, list):
        items, n = [], 0
        for v in value:
            nv, c = replace_player_refs(v, source_id, target_id)
            items.append(nv)
            n += c
        return items, n
    if value == source_id:
        return target_id, 1
    return value, 0


def _merge_recent_matches(a: List[Dict[str, Any]], b: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen, out = set(), []
    for m in sorted(a + b, key=lambda m: _when(m.get("date")), reverse=True):
        if m.get("matchId") in seen:
            continue
        seen.add(m.get("matchId"))
        out.append(m)
    return out[:RECENT_MATCHES_LIMIT]


def _merge_recent_teams(a: List[Dict[str, Any]], b: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    by_team: Dict[str, Dict[str, Any]] = {}
    for t in a + b:
        tid = t.get("teamId")
        if tid not in by_team:
            by_team[tid] = dict(t)
            continue
        cur = by_team[tid]
        cur["matchesPlayed"] = int(cur.get("matchesPlayed", 0)) + int(t.get("matchesPlayed", 0))
        if _when(t.get("lastPlayed")) > _when(cur.get("lastPlayed")):
            cur["lastPlayed"] = t.get("lastPlayed")
    out = sorted(by_team.values(), key=lambda t: _when(t.get("lastPlayed")), reverse=True)
    return out[:RECENT_TEAMS_LIMIT]


def _merge_roster(players: List[Dict[str, Any]], source_id: str, target_id: str) -> List[Dict[str, Any]]:
    """Point roster entries at the target; two entries for the same player are combined."""
    source = next((p for p in players if p.get("playerId") == source_id), None)
    if source is None:
        return players
    target = next((p for p in players if p.get("playerId") == target_id), None)
    rest = [p for p in players if p.get("playerId") != source_id]

    if target is None:
        moved = dict(source)
        moved["playerId"] = target_id
        moved["player"] = dict(source.get("player") or {}, playerId=target_id)
        return rest + [moved]

    target["matchesPlayed"] = int(target.get("matchesPlayed", 0)) + int(source.get("matchesPlayed", 0))
    target["totalRuns"] = int(target.get("totalRuns", 0)) + int(source.get("totalRuns", 0))
    target["totalWickets"] = int(target.get("totalWickets", 0)) + int(source.get("totalWickets", 0))
    if _when(source.get("lastPlayed")) > _when(target.get("lastPlayed")):
        target["lastPlayed"] = source.get("lastPlayed")
    target["isCaptain"] = bool(target.get("isCaptain")) or bool(source.get("isCaptain"))
    target["isViceCaptain"] = bool(target.get("isViceCaptain")) or bool(source.get("isViceCaptain"))
    return rest


async def merge_players(
    store: DocumentStore,
    source_id: str,
    target_id: str,
    batch_size: int = MIGRATION_BATCH_SIZE,
) -> MergeResult:
    """
    Fold the duplicate `source_id` into `target_id`.

    Career counters are summed and derived values recomputed, achievements
    concatenated, recency lists merged. Every match and team reference is
    rewritten to the target, then the source is soft-deactivated.
    """
    if source_id == target_id:
        raise MergeError("Cannot merge a player into itself")

    players = COLLECTIONS["players"]
    source = await store.get_document(players, source_id)
    target = await store.get_document(players, target_id)
    if source is None:
        raise MergeError(f"Player {source_id} not found")
    if target is None:
        raise MergeError(f"Player {target_id} not found")
    if not source.get("isActive", True):
        raise MergeError(f"Player {source_id} is inactive (merged into {source.get('mergedInto')})")
    if not target.get("isActive", True):
        raise MergeError(f"Player {target_id} is inactive (merged into {target.get('mergedInto')})")

    now = utc_now()
    result = MergeResult(source_id=source_id, target_id=target_id)

    career = merge_career_stats(target.get("careerStats"), source.get("careerStats"))
    kept_wicket = "wicket-keeper" in (target.get("role"), source.get("role"))
    source_names = list(target.get("sourceNames") or [])
    for n in [source.get("name")] + list(source.get("sourceNames") or []):
        if n and n not in source_names:
            source_names.append(n)

    target_update = {
        "careerStats": career,
        "achievements": list(target.get("achievements") or []) + list(source.get("achievements") or []),
        "recentMatches": _merge_recent_matches(target.get("recentMatches") or [], source.get("recentMatches") or []),
        "recentTeams": _merge_recent_teams(target.get("recentTeams") or [], source.get("recentTeams") or []),
        "teamIds": sorted(set(target.get("teamIds") or []) | set(source.get("teamIds") or [])),
        "sourceNames": source_names,
        "role": derive_role(career, kept_wicket),
        "preferredTeamId": target.get("preferredTeamId") or source.get("preferredTeamId"),
        "updatedAt": now,
    }

    writer = BatchWriter(store, batch_size=batch_size, label="merge")
    async with writer:
        for snap in await store.get(COLLECTIONS["matches"]):
            doc = {k: v for k, v in snap.data.items() if k not in ("createdAt", "updatedAt")}
            rewritten, hits = replace_player_refs(doc, source_id, target_id)
            if not hits:
                continue
            rewritten["playerIds"] = sorted(set(rewritten.get("playerIds") or []))
            rewritten["updatedAt"] = now
            writer.update(COLLECTIONS["matches"], snap.id, rewritten, key=f"matches:{snap.id}")
            result.matches_updated += 1

        for snap in await store.get(COLLECTIONS["teams"]):
            team = snap.data
            roster = team.get("players") or []
            touches_roster = any(p.get("playerId") == source_id for p in roster)
            update: Dict[str, Any] = {}
            if touches_roster:
                update["players"] = _merge_roster([dict(p) for p in roster], source_id, target_id)
            for role_key, snap_key in (("captainId", "captain"), ("viceCaptainId", "viceCaptain")):
                if team.get(role_key) == source_id:
                    update[role_key] = target_id
                    update[snap_key] = {"playerId": target_id, "name": target.get("name") or TBD}
            if not update:
                continue
            update["updatedAt"] = now
            writer.update(COLLECTIONS["teams"], snap.id, update, key=f"teams:{snap.id}")
            result.teams_updated += 1

        writer.update(players, target_id, target_update, key=f"players:{target_id}")
        writer.update(
            players,
            source_id,
            {"isActive": False, "mergedInto": target_id, "updatedAt": now},
            key=f"players:{source_id}",
        )

    result.failed_keys = list(writer.result.failed_keys)
    if result.failed_keys:
        logger.error("Merge %s -> %s left %d writes failed", source_id, target_id, len(result.failed_keys))
    else:
        logger.info(
            "Merged player %s into %s (%d matches, %d teams)",
            source_id, target_id, result.matches_updated, result.teams_updated,
        )
    return result


# -----------------------------
# Stored document validation
# -----------------------------
async def validate_documents(store: DocumentStore) -> List[DocumentValidationError]:
    """Re-check every stored player, team and match; returns one error per invalid document."""
    problems: List[DocumentValidationError] = []
    for kind, check, id_field in (
        ("players", player_errors, "playerId"),
        ("teams", team_errors, "teamId"),
        ("matches", match_errors, "matchId"),
    ):
        snaps = await store.get(COLLECTIONS[kind])
        for snap in snaps:
            errors = check(snap.data)
            if errors:
                problems.append(DocumentValidationError(kind, str(snap.data.get(id_field) or snap.id), errors))
        logger.info("Validated %d %s", len(snaps), kind)
    return problems


# -----------------------------
# Legacy squad folding
# -----------------------------
def _person(value: Any) -> Tuple[Optional[str], Optional[str]]:
    """Legacy captain fields are either a name or {playerId, name}."""
    if isinstance(value, dict):
        return value.get("playerId"), value.get("name")
    if isinstance(value, str) and value.strip():
        return None, value.strip()
    return None, None


def _squad_player(p: Dict[str, Any]) -> Dict[str, Any]:
    return clean_document({
        "playerId": p.get("playerId"),
        "name": p.get("name"),
        "role": p.get("role"),
        "battingOrder": p.get("battingOrder", p.get("batting_order")),
        "isCaptain": bool(p.get("isCaptain")),
        "isViceCaptain": bool(p.get("isViceCaptain")),
        "isWicketKeeper": bool(p.get("isWicketKeeper")),
    })


async def fold_legacy_squads(store: DocumentStore, batch_size: int = MIGRATION_BATCH_SIZE) -> MigrationReport:
    """
    Embed standalone match-squad documents into their match (teamN.squad)
    and delete them. Squads whose match cannot be found are left in place.
    """
    report = MigrationReport(run_id=utc_now().strftime("%Y%m%d%H%M%S"))
    stats = report.for_entity("squads")

    squads: Dict[str, Dict[str, Tuple[str, Dict[str, Any]]]] = {}
    for snap in await store.get(COLLECTIONS["matchSquads"]):
        data = snap.data
        stats.processed += 1
        match_ref = data.get("matchId") or (data.get("match") or {}).get("matchId")
        team_ref = data.get("teamId") or (data.get("team") or {}).get("teamId")
        if not match_ref or not team_ref:
            report.record_failure("squads", snap.id, "fold-squads", "squad has no matchId/teamId")
            continue
        squads.setdefault(str(match_ref), {})[str(team_ref)] = (snap.id, data)

    now = utc_now()
    writer = BatchWriter(store, batch_size=batch_size, label="squads")
    folded: List[str] = []
    async with writer:
        for snap in await store.get(COLLECTIONS["matches"]):
            doc = snap.data
            by_team = squads.pop(str(doc.get("externalReferenceId")), None) or squads.pop(str(doc.get("matchId")), None)
            if not by_team:
                continue

            update: Dict[str, Any] = {}
            for tk in TEAM_KEYS:
                side = doc.get(tk) or {}
                entry = by_team.pop(str(side.get("id")), None)
                if entry is None:
                    continue
                squad_id, data = entry
                players = [_squad_player(p) for p in data.get("players") or []]
                captain_id, captain_name = _person(data.get("captain"))
                vice_id, vice_name = _person(data.get("viceCaptain"))
                keeper = next((p for p in players if p.get("isWicketKeeper")), None)

                squad = dict(side.get("squad") or {})
                squad.update({
                    "teamId": side.get("id"),
                    "players": players,
                    "captainName": captain_name or squad.get("captainName") or TBD,
                    "captainId": captain_id or squad.get("captainId"),
                })
                if vice_name:
                    squad.update({"viceCaptainName": vice_name, "viceCaptainId": vice_id})
                if keeper is not None:
                    squad.update({"wicketKeeperName": keeper.get("name"), "wicketKeeperId": keeper.get("playerId")})
                update[f"{tk}.squad"] = squad
                update[f"{tk}.squadId"] = squad_id
                folded.append(squad_id)

            # Squads for teams that are not in this match stay behind as orphans
            for _, (squad_id, _) in by_team.items():
                stats.skipped += 1
                logger.warning("Squad %s does not match either team of match %s", squad_id, snap.id)

            if update:
                update["updatedAt"] = now
                writer.update(COLLECTIONS["matches"], snap.id, update, key=f"matches:{snap.id}")

    failed_matches = set(writer.result.failed_keys)
    for key in failed_matches:
        report.record_failure("squads", key, "fold-squads", "match update failed, squads kept")
    if failed_matches:
        # Keep every squad until its match update is known to have landed
        logger.error("%d match updates failed; squads are not deleted", len(failed_matches))
        return report

    for by_team in squads.values():
        for squad_id, _ in by_team.values():
            stats.skipped += 1
            logger.warning("Squad %s has no matching match document", squad_id)

    delete_writer = BatchWriter(store, batch_size=batch_size, label="squad deletes")
    async with delete_writer:
        for squad_id in folded:
            delete_writer.delete(COLLECTIONS["matchSquads"], squad_id, key=f"squads:{squad_id}")
    stats.migrated += len(folded) - delete_writer.result.failed
    for key in delete_writer.result.failed_keys:
        report.record_failure("squads", key.partition(":")[2], "fold-squads", "delete failed")

    logger.info("Folded %d legacy squads into matches", stats.migrated)
    return report
