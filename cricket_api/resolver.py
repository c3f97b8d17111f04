# cricket_api/resolver.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from cricket_api.config import COLLECTIONS
from cricket_api.documents import default_player_document, default_team_document, utc_now
from cricket_api.matching import NameMatch, NameMatcher, default_player_matcher, default_team_matcher, normalize_name
from cricket_api.sequences import SequenceAllocator
from cricket_api.store import DocumentStore

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """Raised when a source name cannot be matched or used to create an entity."""
    pass


@dataclass
class ResolvedEntity:
    entity_id: str
    name: str
    created: bool = False
    strategy: str = "exact"


@dataclass
class ResolutionContext:
    """
    Name -> id indexes for one migration run.

    Built fresh per run (never module-level) and passed to every resolver
    call. Documents created during the run are kept in `teams` / `players`
    and queued in `pending_*` until the orchestrator persists them.
    """
    team_index: Dict[str, str] = field(default_factory=dict)
    player_index: Dict[str, str] = field(default_factory=dict)
    teams: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    players: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    pending_teams: List[str] = field(default_factory=list)
    pending_players: List[str] = field(default_factory=list)
    # Stored players that picked up a new source name this run
    aliased_players: Set[str] = field(default_factory=set)

    def register_team(self, doc: Dict[str, Any]) -> None:
        team_id = doc["teamId"]
        self.teams[team_id] = doc
        key = normalize_name(doc.get("name"))
        if key and key not in self.team_index:
            self.team_index[key] = team_id

    def register_player(self, doc: Dict[str, Any]) -> None:
        player_id = doc["playerId"]
        self.players[player_id] = doc
        names = [doc.get("name")] + list(doc.get("sourceNames") or [])
        for n in names:
            key = normalize_name(n)
            if key and key not in self.player_index:
                self.player_index[key] = player_id

    def drain_pending_teams(self) -> List[Dict[str, Any]]:
        out = [self.teams[t] for t in self.pending_teams]
        self.pending_teams.clear()
        return out

    def drain_pending_players(self) -> List[Dict[str, Any]]:
        out = [self.players[p] for p in self.pending_players]
        self.pending_players.clear()
        return out

    def drain_aliased_players(self) -> List[Dict[str, Any]]:
        out = [self.players[p] for p in sorted(self.aliased_players) if p not in self.pending_players]
        self.aliased_players.clear()
        return out

    @classmethod
    async def from_store(cls, store: DocumentStore) -> "ResolutionContext":
        ctx = cls()
        for snap in await store.get(COLLECTIONS["teams"]):
            if snap.data.get("isActive", True) and snap.data.get("teamId"):
                ctx.register_team(snap.data)
        for snap in await store.get(COLLECTIONS["players"]):
            if snap.data.get("isActive", True) and snap.data.get("playerId"):
                ctx.register_player(snap.data)
        logger.info("Resolution context loaded: %d teams, %d players", len(ctx.teams), len(ctx.players))
        return ctx


class EntityResolver:
    """
    Find-or-create Teams and Players by free-text name.

    Teams match on exact normalized name only; players go through the tiered
    matcher (exact -> containment -> token overlap, first hit in index order).
    """

    def __init__(
        self,
        allocator: SequenceAllocator,
        context: ResolutionContext,
        team_matcher: Optional[NameMatcher] = None,
        player_matcher: Optional[NameMatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.allocator = allocator
        self.context = context
        self.team_matcher = team_matcher or default_team_matcher()
        self.player_matcher = player_matcher or default_player_matcher()
        self.clock = clock
        # Index reads and writes around the allocator await are serialized
        self._lock = asyncio.Lock()

    async def resolve_team(self, name: Optional[str]) -> ResolvedEntity:
        key = normalize_name(name)
        if not key:
            raise ResolutionError(f"Cannot resolve team from empty name {name!r}")

        async with self._lock:
            found = self.team_matcher.match(key, self.context.team_index)
            if found is not None:
                return ResolvedEntity(found.entity_id, self.context.teams[found.entity_id]["name"], False, found.strategy)

            ids = await self.allocator.allocate("teams")
            doc = default_team_document(str(name), ids, now=self.clock())
            self.context.register_team(doc)
            self.context.pending_teams.append(doc["teamId"])
            logger.info("Created team %s (%s)", doc["name"], doc["teamId"])
            return ResolvedEntity(doc["teamId"], doc["name"], True, "created")

    async def resolve_player(self, name: Optional[str], exclude: Iterable[str] = ()) -> ResolvedEntity:
        """
        `exclude` holds player ids already on the other side of the same match.
        A fuzzy hit on one of them is a different person; an exact hit is kept.
        """
        key = normalize_name(name)
        if not key:
            raise ResolutionError(f"Cannot resolve player from empty name {name!r}")

        async with self._lock:
            found = self._match_player(key, exclude)
            if found is not None:
                doc = self.context.players[found.entity_id]
                if found.strategy != "exact":
                    logger.debug("Player %r matched %r via %s", name, doc["name"], found.strategy)
                    self._remember_alias(doc, str(name))
                return ResolvedEntity(found.entity_id, doc["name"], False, found.strategy)

            ids = await self.allocator.allocate("players")
            doc = default_player_document(str(name), ids, now=self.clock())
            self.context.register_player(doc)
            self.context.pending_players.append(doc["playerId"])
            logger.info("Created player %s (%s)", doc["name"], doc["playerId"])
            return ResolvedEntity(doc["playerId"], doc["name"], True, "created")

    def _match_player(self, key: str, exclude: Iterable[str] = ()) -> Optional[NameMatch]:
        index = self.context.player_index
        found = self.player_matcher.match(key, index)
        banned = set(exclude)
        if found is None or found.strategy == "exact" or found.entity_id not in banned:
            return found
        logger.debug("Fuzzy match %r -> %s is on the opposing side, looking further", key, found.entity_id)
        return self.player_matcher.match(key, {k: v for k, v in index.items() if v not in banned})

    def lookup_player(
        self,
        name: Optional[str],
        pool: Optional[Iterable[str]] = None,
        exclude: Iterable[str] = (),
    ) -> Optional[str]:
        """
        Match without creating. With `pool`, only those player ids are
        candidates (e.g. the players of one match); ids in `exclude` never
        match. Returns None when nothing matches; ids are never fabricated.
        """
        key = normalize_name(name)
        if not key:
            return None

        index = self.context.player_index
        if pool is not None:
            allowed = set(pool)
            index = {}
            # Canonical names first so aliases never shadow them
            for player_id in pool:
                doc = self.context.players.get(player_id)
                if doc:
                    index.setdefault(normalize_name(doc.get("name")), player_id)
            for k, v in self.context.player_index.items():
                if v in allowed:
                    index.setdefault(k, v)

        banned = set(exclude)
        if banned:
            index = {k: v for k, v in index.items() if v not in banned}

        found = self.player_matcher.match(key, index)
        return found.entity_id if found else None

    def _remember_alias(self, doc: Dict[str, Any], name: str) -> None:
        names = doc.setdefault("sourceNames", [])
        if name.strip() and name.strip() not in names:
            names.append(name.strip())
            if doc["playerId"] not in self.context.pending_players:
                self.context.aliased_players.add(doc["playerId"])
        key = normalize_name(name)
        if key:
            self.context.player_index.setdefault(key, doc["playerId"])
