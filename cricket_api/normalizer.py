# cricket_api/normalizer.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from cricket_api.config import (
    DEFAULT_MATCH_TYPE,
    DEFAULT_SEASON,
    DEFAULT_TOURNAMENT_ID,
    DEFAULT_TOURNAMENT_NAME,
    DEFAULT_TOURNAMENT_SHORT_NAME,
    DEFAULT_VENUE,
)
from cricket_api.documents import TBD, UNSET, clean_document, player_snapshot, utc_now
from cricket_api.matching import normalize_name
from cricket_api.models import BattingLine, BowlingLine, FieldingLine, PlayerPerformance, Score
from cricket_api.resolver import EntityResolver, ResolutionError
from cricket_api.scoring import balls_to_overs, overs_to_balls, parse_score, safe_overs_to_balls
from cricket_api.sequences import AllocatedId
from cricket_api.source import HowOut, ParsedMatch, SourceBatting, SourceInnings

logger = logging.getLogger(__name__)

TEAM_KEYS = ("team1", "team2")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

_TIE_WORDS = ("tie", "tied", "super over")
_NO_RESULT_WORDS = ("no result", "abandon", "washed out", "cancelled", "n/r")


class MatchNormalizationError(Exception):
    """Raised when one source match cannot be converted (the match is skipped)."""
    pass


@dataclass
class Captains:
    captain: Optional[str] = None
    vice_captain: Optional[str] = None
    wicket_keeper: Optional[str] = None


@dataclass
class NormalizedMatch:
    """Everything the orchestrator needs from one converted source match."""
    match_doc: Dict[str, Any]
    innings_updates: Dict[str, Any]
    performances: List[PlayerPerformance]
    team_ids: Tuple[str, str]
    winner_team_id: Optional[str]
    result_type: str
    warnings: List[str] = field(default_factory=list)


def parse_match_date(raw: Optional[str]) -> Optional[datetime]:
    """Source date string -> timezone-aware datetime (stored as a Firestore Timestamp)."""
    if not raw:
        return None
    s = raw.strip()
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        dt = None
        for fmt in _DATE_FORMATS:
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _same_name(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_name(a), normalize_name(b)
    return bool(na) and na == nb


def _contains(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_name(a), normalize_name(b)
    return bool(na) and bool(nb) and (na in nb or nb in na)


def opponent_key(team_key: str) -> str:
    return "team2" if team_key == "team1" else "team1"


class MatchNormalizer:
    """
    Converts one ParsedMatch into the nested match document.

    Steps: resolve teams -> captains -> players -> scores -> result ->
    fall of wickets -> clean. Each call is independent of other matches.
    """

    def __init__(self, resolver: EntityResolver, clock=utc_now) -> None:
        self.resolver = resolver
        self.clock = clock

    @property
    def context(self):
        return self.resolver.context

    # -------------------------
    # Entry point
    # -------------------------
    async def normalize(self, match: ParsedMatch, ids: AllocatedId) -> NormalizedMatch:
        warnings: List[str] = []

        team_docs = await self._resolve_teams(match)
        innings_keys = self._innings_team_keys(match, warnings)
        captains = {tk: self._extract_captains(match, innings_keys, tk) for tk in TEAM_KEYS}

        perfs = await self._extract_players(match, innings_keys, team_docs)
        self._credit_fielding(match, innings_keys, perfs, team_docs)

        try:
            scores = self._compute_scores(match, innings_keys)
        except ValueError as e:
            raise MatchNormalizationError(f"Match {match.match_id}: {e}") from e

        result = self._determine_result(match, team_docs, scores, warnings)
        fall_of_wickets = self._build_fall_of_wickets(match, innings_keys, perfs)

        when = parse_match_date(match.date)
        if when is None:
            warnings.append(f"unparseable date {match.date!r}, using run time")
            logger.warning("Match %s: unparseable date %r, using run time", match.match_id, match.date)
            when = self.clock()

        now = self.clock()
        doc: Dict[str, Any] = {
            "matchId": ids.entity_id,
            "displayId": ids.display_id,
            "documentKey": ids.document_key,
            "externalReferenceId": match.match_id,
            "title": f"{match.teams.team1} vs {match.teams.team2}",
            "tournament": {
                "tournamentId": DEFAULT_TOURNAMENT_ID,
                "name": match.tournament or DEFAULT_TOURNAMENT_NAME,
                "shortName": DEFAULT_TOURNAMENT_SHORT_NAME,
                "season": str(when.year if match.date else DEFAULT_SEASON),
            },
            "matchType": DEFAULT_MATCH_TYPE,
            "venue": match.ground or DEFAULT_VENUE,
            "status": "completed",
            "scheduledDate": when,
            "completedDate": when,
            "teamIds": [team_docs["team1"]["teamId"], team_docs["team2"]["teamId"]],
            "playerIds": sorted({p.player_id for p in perfs.values()}),
            "toss": self._build_toss(match, team_docs),
            "result": result,
            "fallOfWickets": fall_of_wickets,
            "playerOfMatchId": None,
            "createdAt": now,
            "updatedAt": now,
        }

        for tk in TEAM_KEYS:
            team = team_docs[tk]
            team_perfs = sorted(
                (p for (key, _), p in perfs.items() if key == tk),
                key=lambda p: p.name.lower(),
            )
            doc[tk] = {
                "id": team["teamId"],
                "name": team["name"],
                "shortName": team.get("shortName"),
                "squad": self._squad_snapshot(team, captains[tk], team_perfs),
                "squadId": f"{ids.entity_id}_{team['teamId']}",
                "score": scores[tk].to_dict(),
                "players": [
                    p.to_document(player_snapshot(self.context.players.get(p.player_id, {"playerId": p.player_id, "name": p.name})))
                    for p in team_perfs
                ],
            }

        innings_updates = {
            f"{tk}.innings": self._build_innings(match, innings_keys, tk, perfs, team_docs, fall_of_wickets)
            for tk in TEAM_KEYS
        }

        return NormalizedMatch(
            match_doc=clean_document(doc),
            innings_updates=clean_document(innings_updates),
            performances=list(perfs.values()),
            team_ids=(team_docs["team1"]["teamId"], team_docs["team2"]["teamId"]),
            winner_team_id=result["winnerTeamId"],
            result_type=result["resultType"],
            warnings=warnings,
        )

    # -------------------------
    # 1. Teams
    # -------------------------
    async def _resolve_teams(self, match: ParsedMatch) -> Dict[str, Dict[str, Any]]:
        try:
            t1 = await self.resolver.resolve_team(match.teams.team1)
            t2 = await self.resolver.resolve_team(match.teams.team2)
        except ResolutionError as e:
            raise MatchNormalizationError(f"Match {match.match_id}: {e}") from e

        if t1.entity_id == t2.entity_id:
            raise MatchNormalizationError(
                f"Match {match.match_id}: both sides resolved to the same team {t1.name!r}"
            )
        return {"team1": self.context.teams[t1.entity_id], "team2": self.context.teams[t2.entity_id]}

    def _innings_team_keys(self, match: ParsedMatch, warnings: Optional[List[str]] = None) -> List[Tuple[str, str]]:
        """(batting team key, bowling team key) per innings, in source order."""
        out: List[Tuple[str, str]] = []
        for idx, inn in enumerate(match.innings):
            if _same_name(inn.team, match.teams.team1):
                bat = "team1"
            elif _same_name(inn.team, match.teams.team2):
                bat = "team2"
            elif _contains(inn.team, match.teams.team1) and not _contains(inn.team, match.teams.team2):
                bat = "team1"
            elif _contains(inn.team, match.teams.team2) and not _contains(inn.team, match.teams.team1):
                bat = "team2"
            else:
                # Fall back to batting order
                bat = "team1" if idx % 2 == 0 else "team2"
                if warnings is not None:
                    warnings.append(f"innings {idx + 1} team {inn.team!r} not in teams, assumed {bat}")
                    logger.warning("Match %s: innings team %r not recognised, assuming %s", match.match_id, inn.team, bat)
            out.append((bat, "team2" if bat == "team1" else "team1"))
        return out

    def player_names_by_side(self, match: ParsedMatch) -> List[Tuple[str, str]]:
        """(team key, name) for every batter, bowler and fielder, in source order."""
        out: List[Tuple[str, str]] = []
        for inn, (bat, bowl) in zip(match.innings, self._innings_team_keys(match)):
            out.extend((bat, b.name) for b in inn.batting)
            out.extend((bowl, w.name) for w in inn.bowling)
            for b in inn.batting:
                how = b.how_out
                if how.type in ("caught", "stumped", "run out"):
                    out.extend((bowl, n) for n in [how.fielder, *how.fielders] if n)
        return out

    # -------------------------
    # 2. Captains
    # -------------------------
    def _extract_captains(self, match: ParsedMatch, keys: List[Tuple[str, str]], team_key: str) -> Captains:
        found = Captains()
        for inn, (bat, bowl) in zip(match.innings, keys):
            entries: List[Any] = []
            if bat == team_key:
                entries.extend(inn.batting)
            if bowl == team_key:
                entries.extend(inn.bowling)
            for e in entries:
                if e.is_captain and found.captain is None:
                    found.captain = e.name
                if e.is_vice_captain and found.vice_captain is None:
                    found.vice_captain = e.name
                if e.is_wicket_keeper and found.wicket_keeper is None:
                    found.wicket_keeper = e.name
        return found

    # -------------------------
    # 3. Players
    # -------------------------
    async def _perf_for(
        self,
        perfs: Dict[Tuple[str, str], PlayerPerformance],
        team_key: str,
        team_doc: Dict[str, Any],
        name: str,
    ) -> PlayerPerformance:
        other = opponent_key(team_key)
        resolved = await self.resolver.resolve_player(name, exclude=self._team_pool(perfs, other))
        key = (team_key, resolved.entity_id)
        if key not in perfs:
            perfs[key] = PlayerPerformance(
                player_id=resolved.entity_id,
                name=resolved.name,
                team_id=team_doc["teamId"],
                team_name=team_doc["name"],
            )
        return perfs[key]

    async def _extract_players(
        self,
        match: ParsedMatch,
        keys: List[Tuple[str, str]],
        team_docs: Dict[str, Dict[str, Any]],
    ) -> Dict[Tuple[str, str], PlayerPerformance]:
        perfs: Dict[Tuple[str, str], PlayerPerformance] = {}

        for inn, (bat, bowl) in zip(match.innings, keys):
            for b in inn.batting:
                try:
                    p = await self._perf_for(perfs, bat, team_docs[bat], b.name)
                except ResolutionError as e:
                    logger.warning("Match %s: skipping batting entry: %s", match.match_id, e)
                    continue
                p.batted = True
                p.batting.runs += b.runs
                p.batting.balls += b.balls
                p.batting.fours += b.fours
                p.batting.sixes += b.sixes
                p.batting.dismissed = p.batting.dismissed or b.dismissed
                p.batting.dismissal_type = b.how_out.type
                p.is_captain = p.is_captain or b.is_captain
                p.is_vice_captain = p.is_vice_captain or b.is_vice_captain
                p.is_wicket_keeper = p.is_wicket_keeper or b.is_wicket_keeper

            for w in inn.bowling:
                try:
                    p = await self._perf_for(perfs, bowl, team_docs[bowl], w.name)
                except ResolutionError as e:
                    logger.warning("Match %s: skipping bowling entry: %s", match.match_id, e)
                    continue
                p.bowled = True
                p.bowling.balls += safe_overs_to_balls(w.overs)
                p.bowling.maidens += w.maidens
                p.bowling.runs += w.runs
                p.bowling.wickets += w.wickets
                p.is_captain = p.is_captain or w.is_captain
                p.is_vice_captain = p.is_vice_captain or w.is_vice_captain
                p.is_wicket_keeper = p.is_wicket_keeper or w.is_wicket_keeper

        return perfs

    def _team_pool(self, perfs: Dict[Tuple[str, str], PlayerPerformance], team_key: str) -> List[str]:
        return [pid for (tk, pid) in perfs if tk == team_key]

    def _fielder_perf(
        self,
        perfs: Dict[Tuple[str, str], PlayerPerformance],
        team_key: str,
        team_doc: Dict[str, Any],
        name: Optional[str],
    ) -> Optional[PlayerPerformance]:
        """Fielders come from the bowling side; ties go to the first match found."""
        player_id = self.resolver.lookup_player(name, pool=self._team_pool(perfs, team_key))
        if player_id is None:
            # Substitute / non-batting fielder: known player elsewhere, never a new id here
            player_id = self.resolver.lookup_player(name, exclude=self._team_pool(perfs, opponent_key(team_key)))
        if player_id is None:
            return None

        key = (team_key, player_id)
        if key not in perfs:
            doc = self.context.players.get(player_id, {})
            perfs[key] = PlayerPerformance(
                player_id=player_id,
                name=doc.get("name") or str(name),
                team_id=team_doc["teamId"],
                team_name=team_doc["name"],
            )
        return perfs[key]

    def _credit_fielding(
        self,
        match: ParsedMatch,
        keys: List[Tuple[str, str]],
        perfs: Dict[Tuple[str, str], PlayerPerformance],
        team_docs: Dict[str, Dict[str, Any]],
    ) -> None:
        for inn, (_, bowl) in zip(match.innings, keys):
            for b in inn.batting:
                how = b.how_out
                if how.type == "caught":
                    p = self._fielder_perf(perfs, bowl, team_docs[bowl], how.fielder)
                    if p is not None:
                        p.fielding.catches += 1
                    else:
                        logger.debug("Match %s: catch by %r not attributed", match.match_id, how.fielder)
                elif how.type == "stumped":
                    p = self._fielder_perf(perfs, bowl, team_docs[bowl], how.fielder)
                    if p is not None:
                        p.fielding.stumpings += 1
                elif how.type == "run out":
                    names = how.fielders or ([how.fielder] if how.fielder else [])
                    for name in names:
                        p = self._fielder_perf(perfs, bowl, team_docs[bowl], name)
                        if p is not None:
                            p.fielding.run_outs += 1

    # -------------------------
    # 4. Scores
    # -------------------------
    def _compute_scores(self, match: ParsedMatch, keys: List[Tuple[str, str]]) -> Dict[str, Score]:
        scores = {tk: Score() for tk in TEAM_KEYS}
        seen = set()
        for inn, (bat, _) in zip(match.innings, keys):
            if bat in seen:
                # T20: one innings per side; extra entries (super overs) don't change the score
                continue
            seen.add(bat)
            parsed = parse_score(inn.score)
            balls = safe_overs_to_balls(inn.overs)
            scores[bat] = Score(
                runs=parsed.runs,
                wickets=parsed.wickets,
                overs=balls_to_overs(balls),
                declared=parsed.declared,
            )
        return scores

    # -------------------------
    # 5. Result
    # -------------------------
    def _winner_key(self, winner: str, team_docs: Dict[str, Dict[str, Any]], match: ParsedMatch) -> Optional[str]:
        names = {
            "team1": (match.teams.team1, team_docs["team1"]["name"]),
            "team2": (match.teams.team2, team_docs["team2"]["name"]),
        }
        for tk, candidates in names.items():
            if any(_same_name(winner, c) for c in candidates):
                return tk
        hits = [tk for tk, candidates in names.items() if any(_contains(winner, c) for c in candidates)]
        if len(hits) == 1:
            return hits[0]
        return None

    def _determine_result(
        self,
        match: ParsedMatch,
        team_docs: Dict[str, Dict[str, Any]],
        scores: Dict[str, Score],
        warnings: List[str],
    ) -> Dict[str, Any]:
        winner = (match.result.winner or "").strip()
        margin = match.result.margin
        text = f"{winner} {margin or ''}".lower()

        result: Dict[str, Any] = {
            "winnerTeamId": None,
            "winnerTeamName": None,
            "margin": margin,
            "resultType": "normal",
            "winnerResolved": True,
        }

        if any(w in text for w in _NO_RESULT_WORDS) or (not winner and not margin and not match.innings):
            result["resultType"] = "abandoned"
            return result

        if normalize_name(winner) in {"tie", "tied", "match tied"} or (not winner and any(w in text for w in _TIE_WORDS)):
            result["resultType"] = "tie"
            return result

        if not winner:
            # No declared winner: equal scores mean a tie, otherwise nothing to go on
            s1, s2 = scores["team1"], scores["team2"]
            if match.innings and s1.runs == s2.runs and len(match.innings) >= 2:
                result["resultType"] = "tie"
            else:
                result["resultType"] = "abandoned"
            return result

        tk = self._winner_key(winner, team_docs, match)
        if tk is None:
            # Unresolved winner is NOT a draw: keep "normal", flag it for an operator
            result["winnerTeamName"] = winner
            result["winnerResolved"] = False
            warnings.append(f"winner {winner!r} matches neither team")
            logger.warning(
                "Match %s: winner %r matches neither %r nor %r; winnerTeamId left null",
                match.match_id, winner, match.teams.team1, match.teams.team2,
            )
            return result

        result["winnerTeamId"] = team_docs[tk]["teamId"]
        result["winnerTeamName"] = team_docs[tk]["name"]
        return result

    def _build_toss(self, match: ParsedMatch, team_docs: Dict[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if match.toss is None or not match.toss.winner:
            return None
        tk = self._winner_key(match.toss.winner, team_docs, match)
        return {
            "winnerTeamId": team_docs[tk]["teamId"] if tk else None,
            "winnerTeamName": team_docs[tk]["name"] if tk else match.toss.winner,
            "decision": match.toss.decision,
        }

    # -------------------------
    # 6. Fall of wickets
    # -------------------------
    def _ref(self, name: Optional[str], pool: List[str]) -> Optional[Dict[str, Any]]:
        if not name:
            return None
        return {"name": name, "playerId": self.resolver.lookup_player(name, pool=pool)}

    def _dismissal(self, how: HowOut, bowling_pool: List[str]) -> Dict[str, Any]:
        return {
            "type": how.type,
            "bowler": self._ref(how.bowler, bowling_pool),
            "fielder": self._ref(how.fielder, bowling_pool),
            "fielders": [self._ref(n, bowling_pool) for n in how.fielders],
            "text": how.text,
        }

    def _find_batter(self, inn: SourceInnings, name: Optional[str]) -> Optional[SourceBatting]:
        if not name:
            return None
        for b in inn.batting:
            if _same_name(b.name, name):
                return b
        for b in inn.batting:
            if _contains(b.name, name):
                return b
        return None

    def _build_fall_of_wickets(
        self,
        match: ParsedMatch,
        keys: List[Tuple[str, str]],
        perfs: Dict[Tuple[str, str], PlayerPerformance],
    ) -> Dict[str, List[Dict[str, Any]]]:
        out: Dict[str, List[Dict[str, Any]]] = {"team1": [], "team2": []}

        for number, (inn, (bat, bowl)) in enumerate(zip(match.innings, keys), start=1):
            batting_pool = self._team_pool(perfs, bat)
            bowling_pool = self._team_pool(perfs, bowl)

            for fow in inn.fall_of_wickets:
                batter = self._find_batter(inn, fow.player)
                how = batter.how_out if batter is not None else HowOut(type="unknown")
                out[bat].append({
                    "score": fow.score,
                    "wicket": fow.wicket,
                    "over": fow.over,
                    "inningsNumber": number,
                    "player": {
                        "name": fow.player,
                        "playerId": self.resolver.lookup_player(fow.player, pool=batting_pool),
                    },
                    "dismissal": self._dismissal(how, bowling_pool),
                })
        return out

    # -------------------------
    # Embedded squad / innings
    # -------------------------
    def _squad_snapshot(
        self,
        team: Dict[str, Any],
        captains: Captains,
        team_perfs: List[PlayerPerformance],
    ) -> Dict[str, Any]:
        pool = [p.player_id for p in team_perfs]

        def _ref_id(name: Optional[str]) -> Optional[str]:
            return self.resolver.lookup_player(name, pool=pool) if name else None

        return {
            "teamId": team["teamId"],
            "name": team["name"],
            "shortName": team.get("shortName"),
            "captainName": captains.captain or TBD,
            "captainId": _ref_id(captains.captain),
            "viceCaptainName": captains.vice_captain if captains.vice_captain else UNSET,
            "viceCaptainId": _ref_id(captains.vice_captain) if captains.vice_captain else UNSET,
            "wicketKeeperName": captains.wicket_keeper if captains.wicket_keeper else UNSET,
            "wicketKeeperId": _ref_id(captains.wicket_keeper) if captains.wicket_keeper else UNSET,
        }

    def _build_innings(
        self,
        match: ParsedMatch,
        keys: List[Tuple[str, str]],
        team_key: str,
        perfs: Dict[Tuple[str, str], PlayerPerformance],
        team_docs: Dict[str, Dict[str, Any]],
        fall_of_wickets: Dict[str, List[Dict[str, Any]]],
    ) -> Optional[Dict[str, Any]]:
        """The innings in which `team_key` batted (first one if several)."""
        for number, (inn, (bat, bowl)) in enumerate(zip(match.innings, keys), start=1):
            if bat != team_key:
                continue

            batting_pool = self._team_pool(perfs, bat)
            bowling_pool = self._team_pool(perfs, bowl)
            parsed = parse_score(inn.score)
            balls = safe_overs_to_balls(inn.overs)

            batting = []
            for b in inn.batting:
                line = BattingLine(runs=b.runs, balls=b.balls)
                batting.append({
                    "playerId": self.resolver.lookup_player(b.name, pool=batting_pool),
                    "name": b.name,
                    "runs": b.runs,
                    "balls": b.balls,
                    "fours": b.fours,
                    "sixes": b.sixes,
                    "strikeRate": line.strike_rate,
                    "isCaptain": b.is_captain,
                    "isWicketKeeper": b.is_wicket_keeper,
                    "dismissal": self._dismissal(b.how_out, bowling_pool),
                })

            bowling = []
            for w in inn.bowling:
                line = BowlingLine(balls=safe_overs_to_balls(w.overs), runs=w.runs)
                bowling.append({
                    "playerId": self.resolver.lookup_player(w.name, pool=bowling_pool),
                    "name": w.name,
                    "overs": balls_to_overs(line.balls),
                    "maidens": w.maidens,
                    "runs": w.runs,
                    "wickets": w.wickets,
                    "economy": line.economy,
                })

            return {
                "inningsNumber": number,
                "battingTeamId": team_docs[bat]["teamId"],
                "bowlingTeamId": team_docs[bowl]["teamId"],
                "totalRuns": parsed.runs,
                "totalWickets": parsed.wickets,
                "totalOvers": balls_to_overs(balls),
                "extras": inn.extras if inn.extras is not None else UNSET,
                "batting": batting,
                "bowling": bowling,
                "fallOfWickets": [f for f in fall_of_wickets[bat] if f["inningsNumber"] == number],
            }
        return None


# -------------------------
# Replay helpers (stored match -> performances)
# -------------------------
def performances_from_match_doc(doc: Dict[str, Any]) -> List[PlayerPerformance]:
    """Rebuild per-player performances from a stored match document."""
    out: List[PlayerPerformance] = []
    for tk in TEAM_KEYS:
        side = doc.get(tk) or {}
        for p in side.get("players") or []:
            bat = p.get("batting") or {}
            bowl = p.get("bowling") or {}
            fld = p.get("fielding") or {}
            try:
                bowl_balls = overs_to_balls(bowl.get("overs") or 0)
            except ValueError:
                bowl_balls = 0
            out.append(PlayerPerformance(
                player_id=p.get("playerId"),
                name=(p.get("player") or {}).get("name") or "",
                team_id=side.get("id"),
                team_name=side.get("name") or "",
                batted=bool(bat.get("didBat")),
                bowled=bool(bowl.get("didBowl")),
                is_captain=bool(p.get("isCaptain")),
                is_vice_captain=bool(p.get("isViceCaptain")),
                is_wicket_keeper=bool(p.get("isWicketKeeper")),
                batting=BattingLine(
                    runs=int(bat.get("runs") or 0),
                    balls=int(bat.get("balls") or 0),
                    fours=int(bat.get("fours") or 0),
                    sixes=int(bat.get("sixes") or 0),
                    dismissed=bool(bat.get("dismissed")),
                    dismissal_type=bat.get("dismissalType"),
                ),
                bowling=BowlingLine(
                    balls=bowl_balls,
                    maidens=int(bowl.get("maidens") or 0),
                    runs=int(bowl.get("runs") or 0),
                    wickets=int(bowl.get("wickets") or 0),
                ),
                fielding=FieldingLine(
                    catches=int(fld.get("catches") or 0),
                    run_outs=int(fld.get("runOuts") or 0),
                    stumpings=int(fld.get("stumpings") or 0),
                ),
            ))
    return out


def match_sort_key(doc: Dict[str, Any]) -> Tuple[Any, str]:
    when = doc.get("scheduledDate")
    if not isinstance(when, datetime):
        when = datetime.min.replace(tzinfo=timezone.utc)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when, str(doc.get("documentKey") or doc.get("matchId") or "")
