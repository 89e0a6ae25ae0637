"""Durations written in compact unit notation such as ``1h30m`` or ``500ms``."""

from __future__ import annotations

import json
import re
from datetime import timedelta

# unit -> (rank, milliseconds); larger units must come first in a duration.
_UNITS: dict[str, tuple[int, int]] = {
    "ms": (1, 1),
    "s": (2, 1_000),
    "m": (3, 60_000),
    "h": (4, 3_600_000),
    "d": (5, 86_400_000),
    "w": (6, 604_800_000),
    "y": (7, 31_536_000_000),
}

# (unit, milliseconds, only when it divides the whole duration exactly)
_FORMAT_ORDER: tuple[tuple[str, int, bool], ...] = (
    ("y", 31_536_000_000, True),
    ("w", 604_800_000, True),
    ("d", 86_400_000, False),
    ("h", 3_600_000, False),
    ("m", 60_000, False),
    ("s", 1_000, False),
    ("ms", 1, False),
)

_MAX_NANOSECONDS = 2**63 - 1
_PIECE = re.compile(r"([0-9]*)([^0-9]*)")


def _quote(text: str) -> str:
    return json.dumps(text)


def parse_duration(text: str) -> float:
    """Parse a duration such as ``1h30m`` and return it in seconds."""
    if text == "0":
        return 0.0
    if text == "":
        raise ValueError("empty duration string")

    total_ms = 0
    last_rank = len(_UNITS) + 1
    pos = 0
    while pos < len(text):
        match = _PIECE.match(text, pos)
        digits, unit = match.group(1), match.group(2)
        if not digits or not unit:
            raise ValueError(f"not a valid duration string: {_quote(text)}")
        if unit not in _UNITS:
            raise ValueError(f"unknown unit {_quote(unit)} in duration {_quote(text)}")
        rank, mult = _UNITS[unit]
        if rank >= last_rank:
            raise ValueError(f"not a valid duration string: {_quote(text)}")
        last_rank = rank
        total_ms += int(digits) * mult
        if total_ms * 1_000_000 > _MAX_NANOSECONDS:
            raise ValueError("duration out of range")
        pos = match.end()
    return total_ms / 1000


def format_duration(seconds: float | timedelta) -> str:
    """Render a duration given in seconds in compact unit notation."""
    if isinstance(seconds, timedelta):
        seconds = seconds.total_seconds()
    ms = round(seconds * 1000)
    if ms < 0:
        raise ValueError("duration must not be negative")
    if ms == 0:
        return "0s"

    parts = []
    for unit, mult, exact in _FORMAT_ORDER:
        if exact and ms % mult:
            continue
        count, ms = divmod(ms, mult)
        if count:
            parts.append(f"{count}{unit}")
    return "".join(parts)