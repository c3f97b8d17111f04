# cricket_api/source.py
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from cricket_api.config import SOURCE_HTTP_TIMEOUT_SECONDS
from cricket_api.models import ItemFailure

logger = logging.getLogger(__name__)


class SourceFormatError(Exception):
    """Raised when the source export cannot be loaded or a record is malformed."""
    pass


NOT_DISMISSED = {"not out", "retired hurt", "did not bat", "dnb", "absent hurt", ""}

_DISMISSAL_ALIASES = {
    "c": "caught",
    "ct": "caught",
    "catch": "caught",
    "caught and bowled": "caught",
    "c&b": "caught",
    "b": "bowled",
    "runout": "run out",
    "run-out": "run out",
    "ro": "run out",
    "st": "stumped",
    "stumping": "stumped",
    "lbw": "lbw",
    "hit wicket": "hit wicket",
    "notout": "not out",
}

_CAUGHT_AND_BOWLED_RE = re.compile(r"^c\s*(?:&|and)\s*b\s+(.+)$", re.IGNORECASE)
_CAUGHT_RE = re.compile(r"^c\s+(.+?)\s+b\s+(.+)$", re.IGNORECASE)
_STUMPED_RE = re.compile(r"^st\s+(.+?)\s+b\s+(.+)$", re.IGNORECASE)
_RUN_OUT_RE = re.compile(r"^run\s*out\s*(?:\((.*)\))?$", re.IGNORECASE)
_LBW_RE = re.compile(r"^lbw\s+b\s+(.+)$", re.IGNORECASE)
_BOWLED_RE = re.compile(r"^b\s+(.+)$", re.IGNORECASE)
_HIT_WICKET_RE = re.compile(r"^hit\s*wicket\s+b\s+(.+)$", re.IGNORECASE)


def normalize_dismissal_type(raw: Optional[str]) -> str:
    s = re.sub(r"\s+", " ", str(raw or "").strip().lower())
    return _DISMISSAL_ALIASES.get(s, s)


def parse_dismissal_text(text: Optional[str]) -> Dict[str, Any]:
    """
    Infer a structured dismissal from scorecard text:
      "c Rahul b Singh"      -> caught, fielder=Rahul, bowler=Singh
      "c & b Singh"          -> caught, fielder=bowler=Singh
      "run out (Rahul/Dev)"  -> run out, fielders=[Rahul, Dev]
      "st Pant b Chahal"     -> stumped
      "b Bumrah" / "lbw b X" -> bowled / lbw
    """
    t = re.sub(r"\s+", " ", str(text or "").strip())
    out: Dict[str, Any] = {"type": "not out", "bowler": None, "fielder": None, "fielders": [], "text": t}

    if not t or t.lower() in NOT_DISMISSED:
        return out

    m = _CAUGHT_AND_BOWLED_RE.match(t)
    if m:
        bowler = m.group(1).strip()
        out.update(type="caught", bowler=bowler, fielder=bowler)
        return out

    m = _CAUGHT_RE.match(t)
    if m:
        out.update(type="caught", fielder=m.group(1).strip(), bowler=m.group(2).strip())
        return out

    m = _STUMPED_RE.match(t)
    if m:
        out.update(type="stumped", fielder=m.group(1).strip(), bowler=m.group(2).strip())
        return out

    m = _RUN_OUT_RE.match(t)
    if m:
        names = [n.strip() for n in re.split(r"[/,]", m.group(1) or "") if n.strip()]
        out.update(type="run out", fielders=names, fielder=names[0] if names else None)
        return out

    m = _LBW_RE.match(t)
    if m:
        out.update(type="lbw", bowler=m.group(1).strip())
        return out

    m = _HIT_WICKET_RE.match(t)
    if m:
        out.update(type="hit wicket", bowler=m.group(1).strip())
        return out

    m = _BOWLED_RE.match(t)
    if m:
        out.update(type="bowled", bowler=m.group(1).strip())
        return out

    out["type"] = "unknown"
    return out


def _int_or_zero(v: Any) -> int:
    if v is None:
        return 0
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return int(v)
    s = str(v).strip().replace("*", "")
    if s in {"", "-", "DNB"}:
        return 0
    return int(float(s))


def _optional_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


# -----------------------------
# ParsedMatch: validated once at ingestion
# -----------------------------
class HowOut(BaseModel):
    type: str = "not out"
    bowler: Optional[str] = None
    fielder: Optional[str] = None
    fielders: List[str] = Field(default_factory=list)
    text: str = ""

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if data is None:
            return {}
        if isinstance(data, str):
            return parse_dismissal_text(data)
        if isinstance(data, dict):
            data = dict(data)
            raw_type = str(data.get("type") or "").strip().lower()
            if raw_type in {"caught and bowled", "c&b"} and not data.get("fielder"):
                data["fielder"] = data.get("bowler")
            if not data.get("type") and data.get("text"):
                inferred = parse_dismissal_text(data["text"])
                for k, v in inferred.items():
                    if not data.get(k):
                        data[k] = v
            data["type"] = normalize_dismissal_type(data.get("type") or "not out")
            if data.get("fielders") is None:
                data["fielders"] = []
            elif isinstance(data.get("fielders"), str):
                data["fielders"] = [n.strip() for n in re.split(r"[/,]", data["fielders"]) if n.strip()]
            for k in ("bowler", "fielder"):
                data[k] = _optional_str(data.get(k))
            data["text"] = str(data.get("text") or "")
        return data

    @property
    def dismissed(self) -> bool:
        return self.type not in NOT_DISMISSED


class SourceBatting(BaseModel):
    name: str
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    is_captain: bool = False
    is_vice_captain: bool = False
    is_wicket_keeper: bool = False
    how_out: HowOut = Field(default_factory=HowOut)

    @field_validator("runs", "balls", "fours", "sixes", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> int:
        return _int_or_zero(v)

    @field_validator("is_captain", "is_vice_captain", "is_wicket_keeper", mode="before")
    @classmethod
    def _flags(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("how_out", mode="before")
    @classmethod
    def _how_out(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def dismissed(self) -> bool:
        return self.how_out.dismissed


class SourceBowling(BaseModel):
    name: str
    overs: str = "0"
    maidens: int = 0
    runs: int = 0
    wickets: int = 0
    is_captain: bool = False
    is_vice_captain: bool = False
    is_wicket_keeper: bool = False

    @field_validator("overs", mode="before")
    @classmethod
    def _overs(cls, v: Any) -> str:
        return "0" if v is None or str(v).strip() == "" else str(v).strip()

    @field_validator("maidens", "runs", "wickets", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> int:
        return _int_or_zero(v)

    @field_validator("is_captain", "is_vice_captain", "is_wicket_keeper", mode="before")
    @classmethod
    def _flags(cls, v: Any) -> bool:
        return bool(v)


class FallOfWicket(BaseModel):
    score: Optional[int] = None
    wicket: Optional[int] = None
    player: Optional[str] = None
    over: Optional[str] = None

    @field_validator("score", "wicket", mode="before")
    @classmethod
    def _numbers(cls, v: Any) -> Optional[int]:
        return None if v is None or str(v).strip() == "" else _int_or_zero(v)

    @field_validator("player", "over", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> Optional[str]:
        return _optional_str(v)


class SourceInnings(BaseModel):
    team: str
    score: Optional[str] = None
    overs: Optional[str] = None
    batting: List[SourceBatting] = Field(default_factory=list)
    bowling: List[SourceBowling] = Field(default_factory=list)
    fall_of_wickets: List[FallOfWicket] = Field(default_factory=list)
    extras: Optional[Dict[str, Any]] = None

    @field_validator("score", "overs", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> Optional[str]:
        return _optional_str(v)

    @field_validator("batting", "bowling", "fall_of_wickets", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("extras", mode="before")
    @classmethod
    def _extras(cls, v: Any) -> Any:
        if v is None or isinstance(v, dict):
            return v
        return {"total": _int_or_zero(v)}


class SourceTeams(BaseModel):
    team1: str
    team2: str

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("teams list must have exactly two names")
            return {"team1": data[0], "team2": data[1]}
        return data

    @model_validator(mode="after")
    def _distinct(self) -> "SourceTeams":
        self.team1 = self.team1.strip()
        self.team2 = self.team2.strip()
        if not self.team1 or not self.team2:
            raise ValueError("team names must be non-empty")
        if self.team1.lower() == self.team2.lower():
            raise ValueError(f"team1 and team2 must differ (got {self.team1!r})")
        return self


class SourceToss(BaseModel):
    winner: Optional[str] = None
    decision: Optional[str] = None

    @field_validator("decision", mode="before")
    @classmethod
    def _decision(cls, v: Any) -> Optional[str]:
        s = str(v or "").strip().lower()
        if not s:
            return None
        if s.startswith("bat"):
            return "bat"
        if s.startswith("bowl") or s.startswith("field"):
            return "bowl"
        return s


class SourceResult(BaseModel):
    winner: Optional[str] = None
    margin: Optional[str] = None

    @field_validator("winner", "margin", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> Optional[str]:
        return _optional_str(v)


class ParsedMatch(BaseModel):
    match_id: str
    teams: SourceTeams
    date: Optional[str] = None
    ground: Optional[str] = None
    tournament: Optional[str] = None
    toss: Optional[SourceToss] = None
    result: SourceResult = Field(default_factory=SourceResult)
    innings: List[SourceInnings] = Field(default_factory=list)

    @field_validator("match_id", mode="before")
    @classmethod
    def _match_id(cls, v: Any) -> str:
        s = _optional_str(v)
        if s is None:
            raise ValueError("match_id is required")
        return s

    @field_validator("date", "ground", "tournament", mode="before")
    @classmethod
    def _strings(cls, v: Any) -> Optional[str]:
        return _optional_str(v)

    @field_validator("result", mode="before")
    @classmethod
    def _result(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("innings", mode="before")
    @classmethod
    def _innings(cls, v: Any) -> Any:
        return [] if v is None else v


# -----------------------------
# Loading
# -----------------------------
def load_source(path_or_url: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the raw JSON array of match records from a file path or http(s) URL."""
    src = str(path_or_url)

    if src.startswith("http://") or src.startswith("https://"):
        try:
            resp = requests.get(src, timeout=SOURCE_HTTP_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise SourceFormatError(f"Network error: {e}") from e

        if resp.status_code != 200:
            raise SourceFormatError(f"HTTP {resp.status_code} fetching {src}")

        try:
            data = resp.json()
        except ValueError as e:
            raise SourceFormatError(f"Invalid JSON response: {e}") from e
    else:
        path = Path(src)
        if not path.exists():
            raise SourceFormatError(f"Source file not found: {src}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise SourceFormatError(f"Invalid JSON in {src}: {e}") from e

    # Some exports wrap the array: {"matches": [...]}
    if isinstance(data, dict) and isinstance(data.get("matches"), list):
        data = data["matches"]

    if not isinstance(data, list):
        raise SourceFormatError("Source must be a JSON array of match objects")

    logger.info("Loaded %d raw match records from %s", len(data), src)
    return data


def parse_match(raw: Dict[str, Any]) -> ParsedMatch:
    try:
        return ParsedMatch.model_validate(raw)
    except ValidationError as e:
        mid = raw.get("match_id") if isinstance(raw, dict) else None
        raise SourceFormatError(f"Match {mid}: {e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e


def parse_corpus(raw_matches: List[Any]) -> Tuple[List[ParsedMatch], List[ItemFailure]]:
    matches: List[ParsedMatch] = []
    failures: List[ItemFailure] = []
    seen = set()

    for idx, raw in enumerate(raw_matches):
        key = str(raw.get("match_id")) if isinstance(raw, dict) and raw.get("match_id") is not None else f"#{idx}"
        if not isinstance(raw, dict):
            failures.append(ItemFailure("matches", key, "ingest", "record is not an object"))
            continue
        try:
            parsed = parse_match(raw)
        except SourceFormatError as e:
            logger.warning("Skipping source record %s: %s", key, e)
            failures.append(ItemFailure("matches", key, "ingest", str(e)))
            continue

        if parsed.match_id in seen:
            logger.warning("Duplicate match_id %s in source, keeping first", parsed.match_id)
            failures.append(ItemFailure("matches", key, "ingest", "duplicate match_id"))
            continue

        seen.add(parsed.match_id)
        matches.append(parsed)

    return matches, failures
