from datetime import timedelta

import pytest

from objstore.durations import format_duration, parse_duration


@pytest.mark.parametrize(
    "text",
    ["1m30s", "2m", "10s", "1s", "1y", "2w", "1d12h", "500ms", "1h1m1s1ms", "366d", "1w1d"],
)
def test_round_trip(text):
    assert format_duration(parse_duration(text)) == text


def test_zero():
    assert parse_duration("0") == 0
    assert format_duration(0) == "0s"


def test_seconds_value():
    assert parse_duration("10s") == 10


def test_equivalent_spellings():
    assert parse_duration("90s") == parse_duration("1m30s")
    assert parse_duration("1h") == parse_duration("60m")
    assert parse_duration("1w") == parse_duration("7d")
    assert parse_duration("1000ms") == parse_duration("1s")


def test_format_normalises():
    assert format_duration(parse_duration("90s")) == format_duration(parse_duration("1m30s"))


def test_format_accepts_timedelta():
    assert format_duration(timedelta(minutes=2)) == format_duration(parse_duration("2m"))


def test_parse_is_monotonic_in_units():
    values = [parse_duration(f"1{unit}") for unit in ("ms", "s", "m", "h", "d", "w", "y")]
    assert values == sorted(values)
    assert len(set(values)) == len(values)


@pytest.mark.parametrize("text", ["", "10", "s", "1.5s", "-1s", "1s1m", "1h1h", " 1s"])
def test_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_unknown_unit_message():
    with pytest.raises(ValueError, match="unknown unit"):
        parse_duration("5x")


def test_out_of_range():
    with pytest.raises(ValueError, match="duration out of range"):
        parse_duration("99999999999y")


def test_negative_format():
    with pytest.raises(ValueError):
        format_duration(-1)