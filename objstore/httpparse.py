"""Parsing of Content-Length and Last-Modified response headers."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

CONTENT_LENGTH_HEADER = "Content-Length"
LAST_MODIFIED_HEADER = "Last-Modified"

# Time layouts are written against the reference time Mon Jan 2 15:04:05 MST 2006.
RFC3339 = "2006-01-02T15:04:05Z07:00"
RFC1123 = "Mon, 02 Jan 2006 15:04:05 MST"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_SHORT_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_LONG_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_SHORT_DAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
_LONG_DAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_ZERO_STD = {"1": "zero_month", "2": "zero_day", "3": "zero_hour12", "4": "zero_minute", "5": "zero_second", "6": "year"}
_OFFSET_VARIANTS = ("07:00:00", "070000", "07:00", "0700", "07")
_LEADING_INT = re.compile(r"[0-9]+")


class HeaderParseError(ValueError):
    """A header is missing or its value cannot be parsed."""


class _LayoutError(ValueError):
    def __init__(self, layout: str, value: str, layout_elem: str, value_elem: str, message: str = ""):
        if message:
            text = f"parsing time {_quote(value)}{message}"
        else:
            text = (
                f"parsing time {_quote(value)} as {_quote(layout)}: "
                f"cannot parse {_quote(value_elem)} as {_quote(layout_elem)}"
            )
        super().__init__(text)


class _Bad(Exception):
    pass


class _OutOfRange(Exception):
    pass


@dataclass(frozen=True)
class _Token:
    kind: str | None  # None marks literal text
    text: str


def _quote(text: str) -> str:
    return json.dumps(text)


def _is_digit(text: str, index: int) -> bool:
    return index < len(text) and "0" <= text[index] <= "9"


def _std_at(layout: str, i: int) -> tuple[str | None, int]:
    rest = layout[i:]
    c = rest[0]
    if c == "J":
        if rest.startswith("January"):
            return "long_month", 7
        if rest.startswith("Jan"):
            return "month", 3
    elif c == "M":
        if rest.startswith("Monday"):
            return "long_weekday", 6
        if rest.startswith("Mon"):
            return "weekday", 3
        if rest.startswith("MST"):
            return "tz", 3
    elif c == "0":
        if len(rest) > 1 and rest[1] in _ZERO_STD:
            return _ZERO_STD[rest[1]], 2
    elif c == "1":
        if rest.startswith("15"):
            return "hour", 2
        return "num_month", 1
    elif c == "2":
        if rest.startswith("2006"):
            return "long_year", 4
        return "day", 1
    elif c == "_":
        if rest.startswith("_2") and not rest.startswith("_2006"):
            return "under_day", 2
    elif c in "345":
        return {"3": "hour12", "4": "minute", "5": "second"}[c], 1
    elif c == "P":
        if rest.startswith("PM"):
            return "PM", 2
    elif c == "p":
        if rest.startswith("pm"):
            return "pm", 2
    elif c in "-Z":
        for variant in _OFFSET_VARIANTS:
            if rest.startswith(c + variant):
                return ("iso_tz" if c == "Z" else "num_tz"), len(variant) + 1
    elif c in ".,":
        if len(rest) > 1 and rest[1] in "09":
            j = 1
            while j < len(rest) and rest[j] == rest[1]:
                j += 1
            if not _is_digit(rest, j):
                return ("frac0" if rest[1] == "0" else "frac9"), j
    return None, 0


def _tokenize(layout: str) -> list[_Token]:
    tokens: list[_Token] = []
    literal: list[str] = []
    i = 0
    while i < len(layout):
        kind, width = _std_at(layout, i)
        if kind is None:
            literal.append(layout[i])
            i += 1
            continue
        if literal:
            tokens.append(_Token(None, "".join(literal)))
            literal = []
        tokens.append(_Token(kind, layout[i:i + width]))
        i += width
    if literal:
        tokens.append(_Token(None, "".join(literal)))
    return tokens


def _skip(value: str, prefix: str) -> tuple[str, bool]:
    while prefix:
        if prefix[0] == " ":
            if value and value[0] != " ":
                return value, False
            prefix = prefix.lstrip(" ")
            value = value.lstrip(" ")
            continue
        if not value or value[0] != prefix[0]:
            return value, False
        prefix, value = prefix[1:], value[1:]
    return value, True


def _getnum(value: str, fixed: bool) -> tuple[int, str]:
    if not _is_digit(value, 0):
        raise _Bad
    if not _is_digit(value, 1):
        if fixed:
            raise _Bad
        return int(value[0]), value[1:]
    return int(value[:2]), value[2:]


def _lookup(table: tuple[str, ...], value: str) -> tuple[int, str]:
    for index, name in enumerate(table):
        if len(value) >= len(name) and value[:len(name)].lower() == name.lower():
            return index, value[len(name):]
    raise _Bad


def _parse_fraction(value: str, nbytes: int) -> int:
    """Return microseconds from a fraction of ``nbytes`` characters including the separator."""
    if not value or value[0] not in ".,":
        raise _Bad
    digits = value[1:min(nbytes, 10)]
    if not digits.isascii() or not digits.isdigit():
        raise _Bad
    nanoseconds = int(digits) * 10 ** (9 - len(digits))
    return nanoseconds // 1000


def _signed_offset_length(value: str) -> int:
    if not value or value[0] not in "+-":
        return 0
    match = _LEADING_INT.match(value, 1)
    if match is None or int(match.group()) > 24 * 60 * 60:
        return 0
    return match.end()


def _zone_length(value: str) -> int:
    if len(value) < 3:
        return 0
    if value[:4] in ("ChST", "MeST"):
        return 4
    if value.startswith("GMT"):
        return 3 + _signed_offset_length(value[3:])
    if value[0] in "+-":
        return _signed_offset_length(value)
    upper = 0
    while upper < 6 and upper < len(value) and "A" <= value[upper] <= "Z":
        upper += 1
    if upper == 3:
        return 3
    if upper == 4 and (value[3] == "T" or value[:4] == "WITA"):
        return 4
    if upper == 5 and value[4] == "T":
        return 5
    return 0


def _parse_offset(value: str, variant: str) -> tuple[int, str]:
    sign = value[:1]
    if variant == "07:00":
        if len(value) < 6 or value[3] != ":":
            raise _Bad
        hh, mm, ss, rest = value[1:3], value[4:6], "00", value[6:]
    elif variant == "0700":
        if len(value) < 5:
            raise _Bad
        hh, mm, ss, rest = value[1:3], value[3:5], "00", value[5:]
    elif variant == "07":
        if len(value) < 3:
            raise _Bad
        hh, mm, ss, rest = value[1:3], "00", "00", value[3:]
    elif variant == "07:00:00":
        if len(value) < 9 or value[3] != ":" or value[6] != ":":
            raise _Bad
        hh, mm, ss, rest = value[1:3], value[4:6], value[7:9], value[9:]
    else:
        if len(value) < 7:
            raise _Bad
        hh, mm, ss, rest = value[1:3], value[3:5], value[5:7], value[7:]
    if sign not in ("+", "-") or not all(part.isascii() and part.isdigit() for part in (hh, mm, ss)):
        raise _Bad
    hours, minutes, seconds = int(hh), int(mm), int(ss)
    if hours > 24:
        raise _OutOfRange("time zone offset hour")
    if minutes > 60:
        raise _OutOfRange("time zone offset minute")
    if seconds > 60:
        raise _OutOfRange("time zone offset second")
    offset = (hours * 60 + minutes) * 60 + seconds
    return (-offset if sign == "-" else offset), rest


def _days_in(month: int, year: int) -> int:
    if month == 2:
        leap = year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)
        return 29 if leap else 28
    return 30 if month in (4, 6, 9, 11) else 31


def _parse_time(layout: str, original: str) -> datetime:
    tokens = _tokenize(layout)
    value = original
    year, month, day = 0, -1, -1
    hour = minute = second = micro = 0
    pm = am = utc = False
    offset: int | None = None
    zone_name = ""

    for index, token in enumerate(tokens):
        if token.kind is None:
            value, ok = _skip(value, token.text)
            if not ok:
                raise _LayoutError(layout, original, token.text, value)
            continue

        hold = value
        kind = token.kind
        try:
            if kind == "long_year":
                if len(value) < 4 or not value[:4].isascii() or not value[:4].isdigit():
                    raise _Bad
                year, value = int(value[:4]), value[4:]
            elif kind == "year":
                if len(value) < 2 or not _is_digit(value, 0) or not _is_digit(value, 1):
                    raise _Bad
                year, value = int(value[:2]), value[2:]
                year += 1900 if year >= 69 else 2000
            elif kind == "month":
                month, value = _lookup(_SHORT_MONTHS, value)
                month += 1
            elif kind == "long_month":
                month, value = _lookup(_LONG_MONTHS, value)
                month += 1
            elif kind in ("num_month", "zero_month"):
                month, value = _getnum(value, kind == "zero_month")
                if not 1 <= month <= 12:
                    raise _OutOfRange("month")
            elif kind == "weekday":
                _, value = _lookup(_SHORT_DAYS, value)
            elif kind == "long_weekday":
                _, value = _lookup(_LONG_DAYS, value)
            elif kind in ("day", "under_day", "zero_day"):
                if kind == "under_day" and value[:1] == " ":
                    value = value[1:]
                day, value = _getnum(value, kind == "zero_day")
            elif kind == "hour":
                hour, value = _getnum(value, False)
                if not 0 <= hour <= 23:
                    raise _OutOfRange("hour")
            elif kind in ("hour12", "zero_hour12"):
                hour, value = _getnum(value, kind == "zero_hour12")
                if not 0 <= hour <= 12:
                    raise _OutOfRange("hour")
            elif kind in ("minute", "zero_minute"):
                minute, value = _getnum(value, kind == "zero_minute")
                if not 0 <= minute <= 59:
                    raise _OutOfRange("minute")
            elif kind in ("second", "zero_second"):
                second, value = _getnum(value, kind == "zero_second")
                if not 0 <= second <= 59:
                    raise _OutOfRange("second")
                if len(value) >= 2 and value[0] in ".," and _is_digit(value, 1):
                    following = next((t.kind for t in tokens[index + 1:] if t.kind is not None), None)
                    if following not in ("frac0", "frac9"):
                        n = 2
                        while _is_digit(value, n):
                            n += 1
                        micro, value = _parse_fraction(value, n), value[n:]
            elif kind in ("PM", "pm"):
                marker, value = value[:2], value[2:]
                if len(marker) < 2:
                    raise _Bad
                if marker == ("PM" if kind == "PM" else "pm"):
                    pm = True
                elif marker == ("AM" if kind == "PM" else "am"):
                    am = True
                else:
                    raise _Bad
            elif kind in ("iso_tz", "num_tz"):
                if kind == "iso_tz" and value[:1] == "Z":
                    value, utc = value[1:], True
                else:
                    offset, value = _parse_offset(value, token.text[1:])
            elif kind == "tz":
                if value.startswith("UTC"):
                    value, utc = value[3:], True
                else:
                    length = _zone_length(value)
                    if length == 0:
                        raise _Bad
                    zone_name, value = value[:length], value[length:]
            elif kind == "frac0":
                ndigit = len(token.text)
                if len(value) < ndigit:
                    raise _Bad
                micro, value = _parse_fraction(value, ndigit), value[ndigit:]
            elif kind == "frac9":
                if len(value) >= 2 and value[0] in ".," and _is_digit(value, 1):
                    n = 1
                    while _is_digit(value, n):
                        n += 1
                    micro, value = _parse_fraction(value, n), value[n:]
        except _OutOfRange as exc:
            raise _LayoutError(layout, original, token.text, value, f": {exc} out of range") from None
        except (_Bad, ValueError):
            raise _LayoutError(layout, original, token.text, hold) from None

    if value:
        raise _LayoutError(layout, original, "", value, f": extra text: {_quote(value)}")

    if pm and hour < 12:
        hour += 12
    elif am and hour == 12:
        hour = 0

    if month < 0:
        month = 1
    if day < 0:
        day = 1
    if day < 1 or day > _days_in(month, year):
        raise _LayoutError(layout, original, "", value, ": day out of range")

    try:
        if utc:
            tz = timezone.utc
        elif offset is not None:
            tz = timezone(timedelta(seconds=offset))
        elif zone_name:
            zone_offset = 0
            if len(zone_name) > 3 and zone_name.startswith("GMT"):
                zone_offset = int(zone_name[3:]) * 3600
            tz = timezone(timedelta(seconds=zone_offset), zone_name)
        else:
            tz = timezone.utc
    except ValueError:
        raise _LayoutError(layout, original, "", value, ": time zone offset out of range") from None

    try:
        return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)
    except ValueError:
        raise _LayoutError(layout, original, "", value, ": year out of range") from None


def _parse_int64(text: str) -> int:
    if not re.fullmatch(r"[+-]?[0-9]+", text):
        raise ValueError(f"strconv.ParseInt: parsing {_quote(text)}: invalid syntax")
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"strconv.ParseInt: parsing {_quote(text)}: value out of range")
    return number


def _header_values(headers: Any, name: str) -> list[str]:
    if hasattr(headers, "get_all"):
        found = headers.get_all(name)
        if found is None:
            raise HeaderParseError(f"{name} header not found")
        values = list(found)
    else:
        if not isinstance(headers, Mapping) or name not in headers:
            raise HeaderParseError(f"{name} header not found")
        raw = headers[name]
        values = [raw] if isinstance(raw, str) else list(raw)
    if not values:
        raise HeaderParseError(f"{name} header has no values")
    return values


def parse_content_length(headers: Any) -> int:
    """Return the size in bytes given by the Content-Length header."""
    value = _header_values(headers, CONTENT_LENGTH_HEADER)[0]
    try:
        return _parse_int64(value)
    except ValueError as exc:
        raise HeaderParseError(f"convert {CONTENT_LENGTH_HEADER}: {exc}") from exc


def parse_last_modified(headers: Any, layout: str = "") -> datetime:
    """Return the timestamp in the Last-Modified header, read with ``layout`` (RFC 3339 by default)."""
    value = _header_values(headers, LAST_MODIFIED_HEADER)[0]
    try:
        return _parse_time(layout or RFC3339, value)
    except _LayoutError as exc:
        raise HeaderParseError(f"parse {LAST_MODIFIED_HEADER}: {exc}") from exc