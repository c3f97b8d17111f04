# tests/test_scoring.py
import pytest

from cricket_api.models import BattingLine, BowlingLine
from cricket_api.scoring import (
    balls_to_overs,
    economy_rate,
    format_score,
    overs_to_balls,
    parse_score,
    run_rate,
    safe_overs_to_balls,
    strike_rate,
)


@pytest.mark.parametrize("overs,balls", [("19.4", 118), ("20", 120), (20, 120), (3.4, 22), ("0.5", 5), (".3", 3)])
def test_overs_to_balls(overs, balls):
    assert overs_to_balls(overs) == balls


@pytest.mark.parametrize("bad", ["19.6", "-1", "", None, "abc"])
def test_overs_to_balls_rejects_bad_notation(bad):
    with pytest.raises(ValueError):
        overs_to_balls(bad)


def test_balls_to_overs():
    assert balls_to_overs(118) == 19.4
    assert balls_to_overs(120) == 20.0
    assert balls_to_overs(0) == 0.0


def test_safe_overs_to_balls_is_lenient():
    assert safe_overs_to_balls("4") == 24
    assert safe_overs_to_balls("4.7") == 0
    assert safe_overs_to_balls(None) == 0
    assert safe_overs_to_balls(" ") == 0


def test_rates():
    assert run_rate(120, 120) == 6.0
    assert economy_rate(30, 24) == 7.5
    assert strike_rate(45, 30) == 150.0
    assert run_rate(10, 0) == 0.0
    assert strike_rate(10, 0) == 0.0


def test_parse_score_forms():
    s = parse_score("120/6")
    assert (s.runs, s.wickets, s.declared) == (120, 6, False)

    s = parse_score("350/7d")
    assert (s.runs, s.wickets, s.declared) == (350, 7, True)

    s = parse_score("95")
    assert (s.runs, s.wickets) == (95, 0)

    s = parse_score(None)
    assert (s.runs, s.wickets) == (0, 0)


@pytest.mark.parametrize("bad", ["abc", "120/11", "12-x"])
def test_parse_score_rejects(bad):
    with pytest.raises(ValueError):
        parse_score(bad)


@pytest.mark.parametrize("runs,wickets", [(0, 0), (120, 6), (87, 10), (301, 3)])
def test_parse_format_round_trip(runs, wickets):
    parsed = parse_score(format_score(runs, wickets))
    assert (parsed.runs, parsed.wickets) == (runs, wickets)


def test_format_score_validates():
    assert format_score(350, 7, declared=True) == "350/7d"
    with pytest.raises(ValueError):
        format_score(100, 11)


def test_match_lines_use_shared_rates():
    assert BattingLine(runs=45, balls=30).strike_rate == 150.0
    assert BattingLine(runs=5).strike_rate == 0.0
    assert BowlingLine(balls=22, runs=25).economy == round(economy_rate(25, 22), 2)
    assert BowlingLine().economy == 0.0
