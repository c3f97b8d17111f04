# cricket_api/migration.py
"""
Batch migration orchestrator.

Runs a parsed source corpus through resolver -> normalizer -> store in a
strict phase order:

    wipe -> sequences -> teams -> players -> matches -> captains
         -> innings -> careers -> rosters -> team_stats

Every phase finishes (all batches committed) before the next one starts.
Matches already in the store (same externalReferenceId) are skipped, and
the derived phases (captains, careers, rosters, team_stats) are full
replays over the stored matches from zeroed aggregates, so a re-run or a
resumed run never folds a match twice.

Per-item failures are counted in the MigrationReport and never stop a
phase. Only StoreUnavailableError is allowed to abort the run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from cricket_api.aggregates import (
    derive_role,
    empty_career_stats,
    empty_team_stats,
    fold_performance,
    fold_result,
    match_achievements,
    preferred_team,
    push_recent_match,
    result_label,
    touch_recent_team,
)
from cricket_api.batching import BatchResult, BatchWriter
from cricket_api.config import (
    CAREER_BATCH_SIZE,
    COLLECTIONS,
    MAX_CONCURRENT_COMMITS,
    MIGRATION_BATCH_SIZE,
    SHOW_PROGRESS,
)
from cricket_api.documents import TBD, default_tournament_document, player_snapshot, utc_now
from cricket_api.matching import normalize_name
from cricket_api.models import ItemFailure, MigrationReport, PlayerPerformance
from cricket_api.normalizer import (
    TEAM_KEYS,
    MatchNormalizationError,
    MatchNormalizer,
    NormalizedMatch,
    match_sort_key,
    opponent_key,
    performances_from_match_doc,
)
from cricket_api.resolver import EntityResolver, ResolutionContext, ResolutionError
from cricket_api.sequences import (
    ENTITY_TYPES,
    AllocatedId,
    SequenceAllocator,
    SequenceExhaustedError,
    sequence_from_entity_id,
)
from cricket_api.source import ParsedMatch
from cricket_api.store import DocumentStore
from cricket_api.validation import DocumentValidationError, validate_document

logger = logging.getLogger(__name__)

PHASES: Tuple[str, ...] = (
    "wipe",
    "sequences",
    "teams",
    "players",
    "matches",
    "captains",
    "innings",
    "careers",
    "rosters",
    "team_stats",
)

# Collections cleared by the opt-in wipe phase (legacy squads are input, not output)
WIPE_COLLECTIONS: Tuple[str, ...] = ("players", "teams", "matches", "tournaments", "sequences")

CHECKPOINT_DOC_ID = "latest"

_ITEM_ERRORS = (
    MatchNormalizationError,
    ResolutionError,
    DocumentValidationError,
    SequenceExhaustedError,
    ValueError,
    KeyError,
)


class MigrationError(Exception):
    """Raised when a run cannot start (unknown phase, bad checkpoint)."""
    pass


@dataclass
class MigrationOptions:
    wipe: bool = False
    resume: bool = False
    batch_size: int = MIGRATION_BATCH_SIZE
    career_batch_size: int = CAREER_BATCH_SIZE
    max_concurrency: int = MAX_CONCURRENT_COMMITS
    progress: bool = SHOW_PROGRESS


@dataclass
class _CareerState:
    career: Dict[str, Any] = field(default_factory=empty_career_stats)
    achievements: List[Dict[str, Any]] = field(default_factory=list)
    recent_matches: List[Dict[str, Any]] = field(default_factory=list)
    recent_teams: List[Dict[str, Any]] = field(default_factory=list)
    appearances: List[str] = field(default_factory=list)
    kept_wicket: bool = False


@dataclass
class _RosterEntry:
    player_id: str
    matches_played: int = 0
    total_runs: int = 0
    total_wickets: int = 0
    last_played: Optional[datetime] = None


def _side(doc: Dict[str, Any], team_key: str) -> Dict[str, Any]:
    return doc.get(team_key) or {}


class MigrationOrchestrator:
    def __init__(
        self,
        store: DocumentStore,
        options: Optional[MigrationOptions] = None,
        clock: Callable[[], datetime] = utc_now,
        allocator: Optional[SequenceAllocator] = None,
    ) -> None:
        self.store = store
        self.options = options or MigrationOptions()
        self.clock = clock
        self.allocator = allocator or SequenceAllocator(store, clock=clock)

        self.context: Optional[ResolutionContext] = None
        self.resolver: Optional[EntityResolver] = None
        self.normalizer: Optional[MatchNormalizer] = None

        self._normalized: Dict[str, NormalizedMatch] = {}
        self._wiped = False
        self._handlers = {phase: getattr(self, f"_phase_{phase}") for phase in PHASES}

    # -------------------------
    # Entry points
    # -------------------------
    async def run(
        self,
        matches: Sequence[ParsedMatch],
        ingest_failures: Iterable[ItemFailure] = (),
        run_id: Optional[str] = None,
    ) -> MigrationReport:
        report = MigrationReport(run_id=run_id or self.clock().strftime("%Y%m%d%H%M%S"))

        for f in ingest_failures:
            report.for_entity(f.entity_type).processed += 1
            report.record_failure(f.entity_type, f.key, f.phase, f.message)

        phases = list(PHASES)
        if self.options.resume:
            checkpoint = await self.load_checkpoint()
            last = (checkpoint or {}).get("lastCompletedPhase")
            if last is not None:
                if last not in PHASES:
                    raise MigrationError(f"Checkpoint names unknown phase {last!r}")
                phases = phases[PHASES.index(last) + 1:]
                logger.info("Resuming run %s after phase %s", checkpoint.get("runId"), last)
            else:
                logger.info("No checkpoint found, starting from the first phase")

        await self.run_phases(phases, matches, report)
        return report

    async def run_phases(
        self,
        phases: Sequence[str],
        matches: Sequence[ParsedMatch] = (),
        report: Optional[MigrationReport] = None,
        checkpoint: bool = True,
    ) -> MigrationReport:
        unknown = [p for p in phases if p not in self._handlers]
        if unknown:
            raise MigrationError(f"Unknown phase(s): {', '.join(unknown)}")

        report = report or MigrationReport(run_id=self.clock().strftime("%Y%m%d%H%M%S"))
        for phase in phases:
            logger.info("Phase %s started", phase)
            await self._handlers[phase](matches, report)
            report.completed_phases.append(phase)
            if checkpoint:
                await self._save_checkpoint(phase, report)
            logger.info("Phase %s completed", phase)
        return report

    # -------------------------
    # Checkpoint
    # -------------------------
    async def load_checkpoint(self) -> Optional[Dict[str, Any]]:
        return await self.store.get_document(COLLECTIONS["migrationState"], CHECKPOINT_DOC_ID)

    async def _save_checkpoint(self, phase: str, report: MigrationReport) -> None:
        await self.store.set(
            COLLECTIONS["migrationState"],
            CHECKPOINT_DOC_ID,
            {
                "runId": report.run_id,
                "lastCompletedPhase": phase,
                "completedPhases": list(report.completed_phases),
                "counts": {k: v.to_dict() for k, v in report.stats.items()},
                "updatedAt": self.clock(),
            },
        )

    # -------------------------
    # Helpers
    # -------------------------
    def _progress(self, items: Sequence[Any], desc: str) -> Iterable[Any]:
        return tqdm(items, desc=desc, disable=not self.options.progress)

    def _writer(self, label: str, batch_size: Optional[int] = None) -> BatchWriter:
        return BatchWriter(
            self.store,
            batch_size=self.options.batch_size if batch_size is None else batch_size,
            max_concurrency=self.options.max_concurrency,
            label=label,
        )

    async def _ensure_normalizer(self) -> MatchNormalizer:
        if self.normalizer is None:
            self.context = await ResolutionContext.from_store(self.store)
            self.resolver = EntityResolver(self.allocator, self.context, clock=self.clock)
            self.normalizer = MatchNormalizer(self.resolver, clock=self.clock)
        return self.normalizer

    async def _ensure_resolver(self) -> EntityResolver:
        return (await self._ensure_normalizer()).resolver

    async def _load_docs(self, kind: str, active_only: bool = False) -> List[Dict[str, Any]]:
        docs = [snap.data for snap in await self.store.get(COLLECTIONS[kind])]
        if active_only:
            docs = [d for d in docs if d.get("isActive", True)]
        return docs

    def _checked(self, report: MigrationReport, phase: str, stat: str, kind: str, key: str, doc: Dict[str, Any]) -> bool:
        try:
            validate_document(kind, doc)
        except DocumentValidationError as e:
            logger.error("Validation failed for %s: %s", key, e)
            report.record_failure(stat, key, phase, str(e))
            return False
        return True

    def _settle(self, report: MigrationReport, phase: str, result: BatchResult, queued: Dict[str, int]) -> None:
        """Turn a closed writer's outcome into per-stat migrated / error counts."""
        failed: Dict[str, int] = {}
        message = result.errors[-1] if result.errors else "batch commit failed"
        for key in result.failed_keys:
            stat, _, item = key.partition(":")
            failed[stat] = failed.get(stat, 0) + 1
            report.record_failure(stat, item, phase, message)
        for stat, n in queued.items():
            report.for_entity(stat).migrated += n - failed.get(stat, 0)

    async def _persist_created(self, phase: str, report: MigrationReport) -> None:
        """Write teams / players the resolver created since the last call, plus new aliases."""
        if self.context is None:
            return
        teams = self.context.drain_pending_teams()
        players = self.context.drain_pending_players()
        aliased = self.context.drain_aliased_players()
        if not teams and not players and not aliased:
            return

        queued = {"teams": 0, "players": 0}
        writer = self._writer(f"{phase} entities")
        async with writer:
            for kind, id_field, docs in (("teams", "teamId", teams), ("players", "playerId", players)):
                for doc in docs:
                    if not self._checked(report, phase, kind, kind, doc[id_field], doc):
                        continue
                    writer.set(COLLECTIONS[kind], doc[id_field], doc, key=f"{kind}:{doc[id_field]}")
                    queued[kind] += 1
            for doc in aliased:
                writer.update(
                    COLLECTIONS["players"],
                    doc["playerId"],
                    {"sourceNames": list(doc.get("sourceNames") or []), "updatedAt": self.clock()},
                    key=f"aliases:{doc['playerId']}",
                )
        if aliased:
            report.for_entity("aliases").processed += len(aliased)
            queued["aliases"] = len(aliased)
        self._settle(report, phase, writer.result, queued)

    # -------------------------
    # Phase: wipe
    # -------------------------
    async def _phase_wipe(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        if not self.options.wipe:
            logger.info("Wipe not requested, keeping existing data")
            return
        for kind in WIPE_COLLECTIONS:
            deleted = await self.store.delete_collection(COLLECTIONS[kind])
            logger.warning("Wiped %s (%d documents)", COLLECTIONS[kind], deleted)
        self._wiped = True
        self.context = self.resolver = self.normalizer = None

    # -------------------------
    # Phase: sequences
    # -------------------------
    async def _phase_sequences(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        if self._wiped:
            await self.allocator.reset_all()
        else:
            # Keep counters ahead of everything already stored so new ids never collide
            floors = {t: 0 for t in ENTITY_TYPES}
            for kind, id_field in (("teams", "teamId"), ("players", "playerId"), ("matches", "matchId")):
                for doc in await self._load_docs(kind):
                    try:
                        floors[kind] = max(floors[kind], sequence_from_entity_id(kind, str(doc.get(id_field))))
                    except ValueError:
                        logger.warning("Ignoring non-numeric %s %r when flooring sequences", id_field, doc.get(id_field))
            for entity_type, floor in floors.items():
                if floor > 0:
                    value = await self.allocator.ensure_at_least(entity_type, floor)
                    logger.info("Sequence %s at %d", entity_type, value)

        tournaments = COLLECTIONS["tournaments"]
        doc = default_tournament_document(now=self.clock())
        if await self.store.get_document(tournaments, doc["tournamentId"]) is None:
            await self.store.set(tournaments, doc["tournamentId"], doc)
            await self.allocator.ensure_at_least("tournaments", doc["displayId"])
            logger.info("Created default tournament %s", doc["name"])

    # -------------------------
    # Phase: teams
    # -------------------------
    async def _phase_teams(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        resolver = await self._ensure_resolver()
        stats = report.for_entity("teams")
        seen = set()

        for match in self._progress(matches, "Teams"):
            for name in (match.teams.team1, match.teams.team2):
                key = normalize_name(name)
                if key in seen:
                    continue
                seen.add(key)
                stats.processed += 1
                try:
                    resolved = await resolver.resolve_team(name)
                except ResolutionError as e:
                    report.record_failure("teams", match.match_id, "teams", str(e))
                    continue
                if not resolved.created:
                    stats.skipped += 1

        await self._persist_created("teams", report)

    # -------------------------
    # Phase: players
    # -------------------------
    async def _phase_players(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        normalizer = await self._ensure_normalizer()
        resolver = normalizer.resolver
        stats = report.for_entity("players")
        seen = set()

        for match in self._progress(matches, "Players"):
            entries = normalizer.player_names_by_side(match)
            # Names already known exactly go first so a fuzzy match cannot take an opponent's id
            entries.sort(key=lambda e: normalize_name(e[1]) not in resolver.context.player_index)
            sides: Dict[str, set] = {tk: set() for tk in TEAM_KEYS}

            for team_key, name in entries:
                key = normalize_name(name)
                first = key not in seen
                if first:
                    seen.add(key)
                    stats.processed += 1
                try:
                    resolved = await resolver.resolve_player(name, exclude=sides[opponent_key(team_key)])
                except ResolutionError as e:
                    if first:
                        logger.warning("Match %s: %s", match.match_id, e)
                        report.record_failure("players", f"{match.match_id}:{name!r}", "players", str(e))
                    continue
                sides[team_key].add(resolved.entity_id)
                if first and not resolved.created:
                    stats.skipped += 1

        await self._persist_created("players", report)

    # -------------------------
    # Phase: matches
    # -------------------------
    async def _phase_matches(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        normalizer = await self._ensure_normalizer()
        stats = report.for_entity("matches")

        existing = {d.get("externalReferenceId") for d in await self._load_docs("matches")}
        queued = {"matches": 0}

        writer = self._writer("matches")
        async with writer:
            for match in self._progress(matches, "Matches"):
                stats.processed += 1
                if match.match_id in existing:
                    stats.skipped += 1
                    continue

                try:
                    ids = await self.allocator.allocate("matches")
                    nm = await normalizer.normalize(match, ids)
                except _ITEM_ERRORS as e:
                    logger.error("Match %s failed: %s", match.match_id, e)
                    report.record_failure("matches", match.match_id, "matches", str(e))
                    continue

                if not self._checked(report, "matches", "matches", "matches", match.match_id, nm.match_doc):
                    continue

                for w in nm.warnings:
                    report.warnings.append(f"match {match.match_id}: {w}")
                self._normalized[match.match_id] = nm
                existing.add(match.match_id)
                writer.set(COLLECTIONS["matches"], ids.entity_id, nm.match_doc, key=f"matches:{match.match_id}")
                queued["matches"] += 1

        self._settle(report, "matches", writer.result, queued)
        await self._persist_created("matches", report)

    # -------------------------
    # Phase: captains
    # -------------------------
    async def _phase_captains(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        stats = report.for_entity("captains")
        match_docs = sorted(await self._load_docs("matches"), key=match_sort_key)
        teams = await self._load_docs("teams", active_only=True)
        players = {d["playerId"]: d for d in await self._load_docs("players", active_only=True) if d.get("playerId")}

        # Walk oldest -> newest so the most recent flagged captain wins
        captain: Dict[str, Tuple[str, str]] = {}
        vice: Dict[str, Tuple[str, str]] = {}
        flagged: Dict[str, Tuple[str, str]] = {}
        appeared: Dict[str, List[str]] = {}
        for doc in match_docs:
            for tk in TEAM_KEYS:
                side = _side(doc, tk)
                team_id = side.get("id")
                if not team_id:
                    continue
                squad = side.get("squad") or {}
                if squad.get("captainId"):
                    captain[team_id] = (squad["captainId"], squad.get("captainName") or "")
                if squad.get("viceCaptainId"):
                    vice[team_id] = (squad["viceCaptainId"], squad.get("viceCaptainName") or "")
                for p in side.get("players") or []:
                    pid = p.get("playerId")
                    if not pid:
                        continue
                    appeared.setdefault(team_id, [])
                    if pid not in appeared[team_id]:
                        appeared[team_id].append(pid)
                    if p.get("isCaptain"):
                        flagged[team_id] = (pid, (p.get("player") or {}).get("name") or "")

        writer = self._writer("captains")
        queued = {"captains": 0}
        now = self.clock()
        async with writer:
            for team in self._progress(teams, "Captains"):
                team_id = team["teamId"]
                stats.processed += 1
                found = captain.get(team_id) or flagged.get(team_id)
                if found is None:
                    found = self._captain_from_team_name(team, appeared.get(team_id, []), players)

                update: Dict[str, Any] = {"updatedAt": now}
                if found is None:
                    update.update({"captainId": None, "captain": {"playerId": None, "name": TBD}})
                    stats.skipped += 1
                    logger.info("Team %s: no captain found, leaving TBD", team.get("name"))
                else:
                    pid, name = found
                    name = (players.get(pid) or {}).get("name") or name
                    update.update({"captainId": pid, "captain": {"playerId": pid, "name": name}})

                if team_id in vice:
                    vid, vname = vice[team_id]
                    vname = (players.get(vid) or {}).get("name") or vname
                    update.update({"viceCaptainId": vid, "viceCaptain": {"playerId": vid, "name": vname}})

                if found is None and team_id not in vice:
                    continue
                writer.update(COLLECTIONS["teams"], team_id, update, key=f"captains:{team_id}")
                queued["captains"] += 1

        self._settle(report, "captains", writer.result, queued)

    def _captain_from_team_name(
        self,
        team: Dict[str, Any],
        candidates: List[str],
        players: Dict[str, Dict[str, Any]],
    ) -> Optional[Tuple[str, str]]:
        """Teams are often named after their captain ("Rahul XI")."""
        team_name = f" {normalize_name(team.get('name'))} "
        for pid in candidates:
            doc = players.get(pid)
            if doc is None:
                continue
            pname = normalize_name(doc.get("name"))
            if pname and f" {pname} " in team_name:
                return pid, doc.get("name") or ""
        return None

    # -------------------------
    # Phase: innings
    # -------------------------
    async def _phase_innings(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        normalizer = await self._ensure_normalizer()
        stats = report.for_entity("innings")
        by_source = {m.match_id: m for m in matches}

        writer = self._writer("innings")
        queued = {"innings": 0}
        now = self.clock()
        async with writer:
            for doc in self._progress(await self._load_docs("matches"), "Innings"):
                stats.processed += 1
                ext = doc.get("externalReferenceId")
                if all("innings" in _side(doc, tk) for tk in TEAM_KEYS):
                    stats.skipped += 1
                    continue

                nm = self._normalized.get(ext)
                if nm is None:
                    source = by_source.get(ext)
                    if source is None:
                        stats.skipped += 1
                        continue
                    # Resumed run: rebuild from source with the stored ids
                    ids = AllocatedId(
                        display_id=int(doc.get("displayId") or 0),
                        entity_id=doc["matchId"],
                        document_key=str(doc.get("documentKey") or ""),
                    )
                    try:
                        nm = await normalizer.normalize(source, ids)
                    except _ITEM_ERRORS as e:
                        report.record_failure("innings", str(ext), "innings", str(e))
                        continue

                writer.update(
                    COLLECTIONS["matches"],
                    doc["matchId"],
                    {**nm.innings_updates, "updatedAt": now},
                    key=f"innings:{ext}",
                )
                queued["innings"] += 1

        self._settle(report, "innings", writer.result, queued)
        await self._persist_created("innings", report)

    # -------------------------
    # Phase: careers
    # -------------------------
    def _fold_match_into(self, state: _CareerState, doc: Dict[str, Any], perf: PlayerPerformance) -> None:
        result = doc.get("result") or {}
        winner = result.get("winnerTeamId")
        when = doc.get("scheduledDate")

        fold_performance(state.career, perf, winner)
        state.achievements.extend(match_achievements(perf, doc.get("matchId"), when))
        state.kept_wicket = state.kept_wicket or perf.is_wicket_keeper

        if not (perf.batted or perf.bowled):
            return

        tk = "team1" if _side(doc, "team1").get("id") == perf.team_id else "team2"
        state.recent_matches = push_recent_match(state.recent_matches, {
            "matchId": doc.get("matchId"),
            "date": when,
            "teamId": perf.team_id,
            "teamName": perf.team_name,
            "opponent": _side(doc, opponent_key(tk)).get("name"),
            "runs": perf.batting.runs if perf.batted else None,
            "wickets": perf.bowling.wickets if perf.bowled else None,
            "result": result_label(perf.team_id, winner, result.get("resultType") or "normal"),
        })
        state.recent_teams = touch_recent_team(state.recent_teams, perf.team_id, perf.team_name, when)
        state.appearances.append(perf.team_id)

    async def _phase_careers(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        stats = report.for_entity("careers")
        players = {d["playerId"]: d for d in await self._load_docs("players", active_only=True) if d.get("playerId")}
        states = {pid: _CareerState() for pid in players}
        unknown = set()

        for doc in self._progress(sorted(await self._load_docs("matches"), key=match_sort_key), "Careers"):
            folded = set()
            for perf in performances_from_match_doc(doc):
                state = states.get(perf.player_id)
                if state is None:
                    unknown.add(perf.player_id)
                    continue
                # One match counts once per player, even if the id turns up on both sides
                if perf.player_id in folded:
                    logger.warning("Match %s: player %s listed for both sides, counted once", doc.get("matchId"), perf.player_id)
                    report.warnings.append(f"match {doc.get('externalReferenceId')}: player {perf.player_id} on both sides")
                    continue
                folded.add(perf.player_id)
                self._fold_match_into(state, doc, perf)

        if unknown:
            logger.warning("%d player ids in matches have no active player document", len(unknown))

        writer = self._writer("careers", batch_size=self.options.career_batch_size)
        queued = {"careers": 0}
        now = self.clock()
        async with writer:
            for pid, state in states.items():
                stats.processed += 1
                update = {
                    "careerStats": state.career,
                    "achievements": state.achievements,
                    "recentMatches": state.recent_matches,
                    "recentTeams": state.recent_teams,
                    "teamIds": sorted(set(state.appearances)),
                    "preferredTeamId": preferred_team(state.appearances),
                    "role": derive_role(state.career, state.kept_wicket),
                    "updatedAt": now,
                }
                if not self._checked(report, "careers", "careers", "players", pid, {**players[pid], **update}):
                    continue
                writer.update(COLLECTIONS["players"], pid, update, key=f"careers:{pid}")
                queued["careers"] += 1

        self._settle(report, "careers", writer.result, queued)

    # -------------------------
    # Phase: rosters
    # -------------------------
    async def _phase_rosters(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        stats = report.for_entity("rosters")
        teams = await self._load_docs("teams", active_only=True)
        players = {d["playerId"]: d for d in await self._load_docs("players") if d.get("playerId")}

        rosters: Dict[str, Dict[str, _RosterEntry]] = {t["teamId"]: {} for t in teams}
        for doc in self._progress(sorted(await self._load_docs("matches"), key=match_sort_key), "Rosters"):
            when = doc.get("scheduledDate")
            for perf in performances_from_match_doc(doc):
                roster = rosters.get(perf.team_id)
                if roster is None or not perf.player_id:
                    continue
                entry = roster.setdefault(perf.player_id, _RosterEntry(player_id=perf.player_id))
                if perf.batted or perf.bowled:
                    entry.matches_played += 1
                entry.total_runs += perf.batting.runs if perf.batted else 0
                entry.total_wickets += perf.bowling.wickets if perf.bowled else 0
                entry.last_played = when

        writer = self._writer("rosters")
        queued = {"rosters": 0}
        now = self.clock()
        async with writer:
            for team in teams:
                team_id = team["teamId"]
                stats.processed += 1
                entries = []
                for e in rosters[team_id].values():
                    pdoc = players.get(e.player_id) or {"playerId": e.player_id}
                    entries.append({
                        "playerId": e.player_id,
                        "player": player_snapshot(pdoc),
                        "matchesPlayed": e.matches_played,
                        "totalRuns": e.total_runs,
                        "totalWickets": e.total_wickets,
                        "lastPlayed": e.last_played,
                        "isCaptain": e.player_id == team.get("captainId"),
                        "isViceCaptain": e.player_id == team.get("viceCaptainId"),
                    })
                entries.sort(key=lambda r: str(r["player"].get("name") or "").lower())
                writer.update(COLLECTIONS["teams"], team_id, {"players": entries, "updatedAt": now}, key=f"rosters:{team_id}")
                queued["rosters"] += 1

        self._settle(report, "rosters", writer.result, queued)

    # -------------------------
    # Phase: team_stats
    # -------------------------
    async def _phase_team_stats(self, matches: Sequence[ParsedMatch], report: MigrationReport) -> None:
        stats = report.for_entity("team_stats")
        teams = {t["teamId"]: t for t in await self._load_docs("teams", active_only=True) if t.get("teamId")}
        team_stats = {tid: empty_team_stats() for tid in teams}
        recent: Dict[str, List[Dict[str, Any]]] = {tid: [] for tid in teams}

        for doc in self._progress(sorted(await self._load_docs("matches"), key=match_sort_key), "Team stats"):
            result = doc.get("result") or {}
            winner = result.get("winnerTeamId")
            for tk in TEAM_KEYS:
                side, other = _side(doc, tk), _side(doc, opponent_key(tk))
                team_id = side.get("id")
                if team_id not in team_stats:
                    continue
                fold_result(team_stats[team_id], team_id, winner)
                recent[team_id] = push_recent_match(recent[team_id], {
                    "matchId": doc.get("matchId"),
                    "date": doc.get("scheduledDate"),
                    "opponentId": other.get("id"),
                    "opponent": other.get("name"),
                    "score": side.get("score"),
                    "result": result_label(team_id, winner, result.get("resultType") or "normal"),
                })

        writer = self._writer("team stats")
        queued = {"team_stats": 0}
        now = self.clock()
        async with writer:
            for team_id, team in teams.items():
                stats.processed += 1
                update = {"teamStats": team_stats[team_id], "recentMatches": recent[team_id], "updatedAt": now}
                if not self._checked(report, "team_stats", "team_stats", "teams", team_id, {**team, **update}):
                    continue
                writer.update(COLLECTIONS["teams"], team_id, update, key=f"team_stats:{team_id}")
                queued["team_stats"] += 1

        self._settle(report, "team_stats", writer.result, queued)


async def recalculate_team_stats(store: DocumentStore, options: Optional[MigrationOptions] = None) -> MigrationReport:
    """Standalone full replay of team win/loss stats from stored matches."""
    orchestrator = MigrationOrchestrator(store, options)
    return await orchestrator.run_phases(["team_stats"], checkpoint=False)
