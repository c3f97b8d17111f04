# cricket_api/matching.py
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from cricket_api.config import TOKEN_OVERLAP_THRESHOLD

_NON_ALPHA_RE = re.compile(r"[^a-z\s]")
_SPACES_RE = re.compile(r"\s+")


def normalize_name(name: Optional[str]) -> str:
    """
    Canonical key for fuzzy lookups:
      "A. Kumar "   -> "a kumar"
      "Rohit-Sharma" -> "rohitsharma"
    """
    if not name:
        return ""
    s = _NON_ALPHA_RE.sub("", str(name).lower())
    return _SPACES_RE.sub(" ", s).strip()


def compact_name(name: Optional[str]) -> str:
    """Normalized name with spaces removed (duplicate detection key)."""
    return normalize_name(name).replace(" ", "")


@dataclass(frozen=True)
class NameMatch:
    entity_id: str
    matched_name: str
    strategy: str


class NameMatcher(ABC):
    """Strategy: find an entity for an already-normalized name in a name -> id index."""

    strategy = "base"

    @abstractmethod
    def match(self, name: str, index: Mapping[str, str]) -> Optional[NameMatch]:
        ...


class ExactMatcher(NameMatcher):
    strategy = "exact"

    def match(self, name: str, index: Mapping[str, str]) -> Optional[NameMatch]:
        if name in index:
            return NameMatch(index[name], name, self.strategy)
        return None


class ContainmentMatcher(NameMatcher):
    strategy = "containment"

    def match(self, name: str, index: Mapping[str, str]) -> Optional[NameMatch]:
        if not name:
            return None
        # First hit in index order wins
        for known, entity_id in index.items():
            if known and (name in known or known in name):
                return NameMatch(entity_id, known, self.strategy)
        return None


class TokenOverlapMatcher(NameMatcher):
    strategy = "token_overlap"

    def __init__(self, threshold: float = TOKEN_OVERLAP_THRESHOLD) -> None:
        if not (0.0 < threshold <= 1.0):
            raise ValueError("threshold must be in (0, 1]")
        self.threshold = threshold

    def match(self, name: str, index: Mapping[str, str]) -> Optional[NameMatch]:
        words = name.split()
        if not words:
            return None
        wanted = set(words)

        for known, entity_id in index.items():
            known_words = known.split()
            if not known_words:
                continue
            shorter = min(len(words), len(known_words))
            overlap = len(wanted & set(known_words))
            if overlap >= shorter * self.threshold:
                return NameMatch(entity_id, known, self.strategy)
        return None


class TieredNameMatcher(NameMatcher):
    """Runs matchers in order; the first one that finds anything wins."""

    strategy = "tiered"

    def __init__(self, matchers: Optional[Iterable[NameMatcher]] = None) -> None:
        self.matchers: List[NameMatcher] = list(matchers) if matchers is not None else [
            ExactMatcher(),
            ContainmentMatcher(),
            TokenOverlapMatcher(),
        ]

    def match(self, name: str, index: Mapping[str, str]) -> Optional[NameMatch]:
        for matcher in self.matchers:
            found = matcher.match(name, index)
            if found is not None:
                return found
        return None


def default_player_matcher() -> NameMatcher:
    return TieredNameMatcher()


def default_team_matcher() -> NameMatcher:
    # Teams are deduplicated by exact (normalized) name only
    return ExactMatcher()
