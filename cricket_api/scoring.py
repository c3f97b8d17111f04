# cricket_api/scoring.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

OversLike = Union[str, int, float]

_SCORE_RE = re.compile(r"^\s*(\d+)\s*(?:[/-]\s*(\d+))?\s*(d|dec)?\s*$", re.IGNORECASE)


@dataclass
class ParsedScore:
    runs: int = 0
    wickets: int = 0
    declared: bool = False


def overs_to_balls(overs: OversLike) -> int:
    """
    Converts cricket overs notation to balls.

    Supported inputs:
    - "20.0", "19.4", "7.2" (string overs notation)
    - 20 (int overs)
    - 3.4 (float) -> treated as "3.4"

    Rule: ".x" means x balls (0-5). Example: 19.4 = 19*6 + 4 = 118 balls.
    """
    if overs is None:
        raise ValueError("Overs cannot be None")

    s = str(overs).strip()
    if not s:
        raise ValueError("Overs cannot be empty")

    if "." not in s:
        ov_i = int(s)
        if ov_i < 0:
            raise ValueError(f"Invalid overs: {overs}")
        return ov_i * 6

    ov_part, ball_part = s.split(".", 1)
    ov_i = int(ov_part) if ov_part else 0

    ball_part = ball_part.strip()
    balls_i = int(ball_part) if ball_part else 0

    if ov_i < 0:
        raise ValueError(f"Invalid overs: {overs}")
    if balls_i < 0 or balls_i > 5:
        raise ValueError(f"Invalid overs format: {overs} (balls part must be 0-5)")

    return ov_i * 6 + balls_i


def balls_to_overs(balls: int) -> float:
    """Back to overs notation as a number: 118 -> 19.4."""
    if balls <= 0:
        return 0.0
    full, rem = divmod(int(balls), 6)
    return float(f"{full}.{rem}")


def balls_to_overs_float(balls: int) -> float:
    if balls <= 0:
        return 0.0
    return balls / 6.0


def safe_overs_to_balls(overs: Optional[OversLike]) -> int:
    """Lenient variant for source data: bad or missing overs count as 0 balls."""
    if overs is None or str(overs).strip() == "":
        return 0
    try:
        return overs_to_balls(overs)
    except ValueError:
        return 0


def run_rate(runs: int, balls: int) -> float:
    overs = balls_to_overs_float(balls)
    if overs == 0.0:
        return 0.0
    return runs / overs


def economy_rate(runs_conceded: int, balls_bowled: int) -> float:
    return run_rate(runs_conceded, balls_bowled)


def strike_rate(runs: int, balls: int) -> float:
    if balls <= 0:
        return 0.0
    return runs / balls * 100


def parse_score(score: Optional[str]) -> ParsedScore:
    """
    Parse score strings like:
      "120/6"  -> runs=120, wickets=6
      "350/7d" -> runs=350, wickets=7, declared
      "95"     -> runs=95, wickets=0
    Empty / None -> zero score.
    """
    if score is None:
        return ParsedScore()

    s = str(score).strip()
    if not s:
        return ParsedScore()

    m = _SCORE_RE.match(s)
    if not m:
        raise ValueError(f"Invalid score format: {score!r}")

    runs = int(m.group(1))
    wickets = int(m.group(2)) if m.group(2) is not None else 0
    if wickets > 10:
        raise ValueError(f"Invalid score format: {score!r} (wickets must be 0-10)")

    return ParsedScore(runs=runs, wickets=wickets, declared=m.group(3) is not None)


def format_score(runs: int, wickets: int, declared: bool = False) -> str:
    if runs < 0 or wickets < 0 or wickets > 10:
        raise ValueError(f"Invalid score: runs={runs}, wickets={wickets}")
    return f"{runs}/{wickets}{'d' if declared else ''}"
