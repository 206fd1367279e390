"""Parsing and formatting of durations and timestamps.

Durations keep calendar parts (years, months, days) apart from the clock
part, which is stored as an integer number of nanoseconds.
A "zero time" is represented by ``None``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

NANOSECOND = 1
MICROSECOND = 1_000 * NANOSECOND
MILLISECOND = 1_000 * MICROSECOND
SECOND = 1_000 * MILLISECOND
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE

ZERO_DURATION = "PT0S"

_ISO_ERROR = "unsupported ISO8601 duration format"
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_INTEGER = re.compile(r"[+-]?[0-9]+")
_RFC3339 = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}T[0-9]{2}:[0-9]{2}:[0-9]{2}"
    r"(?:\.[0-9]+)?(?:Z|[+-][0-9]{2}:[0-9]{2})"
)
_GO_COMPONENT = re.compile(r"([0-9]*)(\.([0-9]*))?([^0-9.]*)")
_GO_UNITS = {
    "ns": NANOSECOND,
    "us": MICROSECOND,
    "\u00b5s": MICROSECOND,
    "\u03bcs": MICROSECOND,
    "ms": MILLISECOND,
    "s": SECOND,
    "m": MINUTE,
    "h": HOUR,
}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_int64(text: str) -> int:
    """Parse a signed base-10 integer that must fit in 64 bits."""
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


@dataclass
class Duration:
    """A duration with calendar parts and a clock part in nanoseconds."""

    years: int = 0
    months: int = 0
    days: int = 0
    time_ns: int = 0

    @classmethod
    def from_string(cls, value: str) -> Duration:
        """Build a duration from an ISO8601 or Go-style string; empty means zero."""
        if not value:
            return cls()
        return parse_duration_string(value)

    def reset(self) -> None:
        self.years = 0
        self.months = 0
        self.days = 0
        self.time_ns = 0

    def is_zero(self) -> bool:
        return (
            self.time_ns < MILLISECOND
            and self.days == 0
            and self.months == 0
            and self.years == 0
        )

    @property
    def clock_time(self) -> timedelta:
        """The clock part as a timedelta (microsecond precision)."""
        return timedelta(microseconds=_trunc_div(self.time_ns, MICROSECOND))

    def __str__(self) -> str:
        if self.is_zero():
            return ZERO_DURATION

        parts = ["P"]
        if self.years > 0:
            parts.append(f"{self.years}Y")
        if self.months > 0:
            parts.append(f"{self.months}M")
        if self.days > 0:
            parts.append(f"{self.days}D")

        if self.time_ns >= MILLISECOND:
            parts.append("T")
            hours = self.time_ns // HOUR
            minutes = (self.time_ns % HOUR) // MINUTE
            seconds = (self.time_ns % MINUTE) // SECOND
            millis = (self.time_ns % SECOND) // MILLISECOND

            if hours > 0:
                parts.append(f"{hours}H")
            if minutes > 0:
                parts.append(f"{minutes}M")
            if millis > 0:
                parts.append(f"{seconds}.{millis:03d}S")
            elif seconds > 0:
                parts.append(f"{seconds}S")

        return "".join(parts)


def _iso_number(text: str) -> int:
    try:
        return _parse_int64(text)
    except ValueError:
        raise ValueError(_ISO_ERROR) from None


def parse_iso8601_duration(value: str) -> Duration:
    """Parse an ISO8601 duration such as ``P1Y2M3DT4H5M6.007S``."""
    if len(value) < 2 or value[0] != "P":
        raise ValueError(_ISO_ERROR)

    result = Duration()
    start = 1
    parsing_time = False
    decimal = False

    for i, char in enumerate(value[1:], start=1):
        if char == "T":
            if start != i:
                raise ValueError(_ISO_ERROR)
            parsing_time = True
            start = i + 1
            continue

        if char in "YWD":
            if parsing_time or decimal:
                raise ValueError(_ISO_ERROR)
        elif char == "H":
            if not parsing_time or decimal:
                raise ValueError(_ISO_ERROR)
        elif char == "S":
            if not parsing_time:
                raise ValueError(_ISO_ERROR)
        elif char == "M":
            if decimal:
                raise ValueError(_ISO_ERROR)
        elif char == ".":
            if not parsing_time or decimal:
                raise ValueError(_ISO_ERROR)
        else:
            continue

        digits = value[start:i]
        number = _iso_number(digits)

        if char == "Y":
            result.years = number
        elif char == "W":
            result.days += number * 7
        elif char == "D":
            result.days += number
        elif char == "H":
            result.time_ns += number * HOUR
        elif char == "M":
            if parsing_time:
                result.time_ns += number * MINUTE
            else:
                result.months = number
        elif char == ".":
            result.time_ns += number * SECOND
            decimal = True
        elif char == "S":
            if not decimal:
                result.time_ns += number * SECOND
            else:
                scale = {3: 1, 2: 10, 1: 100}.get(len(digits))
                if scale is None:
                    raise ValueError(_ISO_ERROR)
                result.time_ns += number * scale * MILLISECOND

        start = i + 1

    return result


def _parse_go_duration(value: str) -> int:
    """Parse a Go-style duration string (e.g. ``1h2m3.5s``) into nanoseconds."""
    error = ValueError(f"invalid duration {value!r}")
    text = value
    negative = False
    if text and text[0] in "+-":
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return 0
    if not text:
        raise error

    total = 0
    pos = 0
    while pos < len(text):
        match = _GO_COMPONENT.match(text, pos)
        whole, _, fraction, unit_name = match.groups()
        if not whole and not fraction:
            raise error
        if not unit_name:
            raise error
        unit = _GO_UNITS.get(unit_name)
        if unit is None:
            raise error
        amount = int(whole or "0") * unit
        if fraction:
            amount += int(fraction) * unit // (10 ** len(fraction))
        total += amount
        if total > 1 << 63:
            raise error
        pos = match.end()

    if negative:
        return -total
    if total > _INT64_MAX:
        raise error
    return total


def parse_duration_string(value: str) -> Duration:
    """Parse either an ISO8601 duration or a Go-style duration string."""
    try:
        return parse_iso8601_duration(value)
    except ValueError:
        pass
    try:
        return Duration(time_ns=_parse_go_duration(value))
    except ValueError:
        raise ValueError("unsupported duration format") from None


def _from_unix_millis(millis: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=millis)


def parse_time(value: object) -> datetime | None:
    """Parse an RFC3339 string or a UNIX timestamp in milliseconds.

    Empty strings and ``None`` give ``None`` (the zero time).
    """
    if value is None:
        return None
    if isinstance(value, str):
        if value == "":
            return None
        try:
            return _from_unix_millis(_parse_int64(value))
        except ValueError:
            pass
        if _RFC3339.fullmatch(value):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                pass
        raise ValueError("invalid time string")
    if isinstance(value, bool):
        raise TypeError("invalid type")
    if isinstance(value, float):
        return _from_unix_millis(int(value))
    if isinstance(value, int):
        return _from_unix_millis(value)
    raise TypeError("invalid type")


def parse_duration(value: object) -> str:
    """Parse a duration and return it formatted as an ISO8601 string.

    Accepts ISO8601 strings, Go-style strings, and milliseconds given as
    numbers or numeric strings. An empty string gives an empty string.
    """
    if value is None:
        return ZERO_DURATION
    if isinstance(value, str):
        if value == "":
            return ""
        try:
            millis = _parse_int64(value)
        except ValueError:
            pass
        else:
            return str(Duration(time_ns=millis * MILLISECOND))
        try:
            return str(parse_duration_string(value))
        except ValueError:
            raise ValueError("invalid duration string") from None
    if isinstance(value, bool):
        raise TypeError("invalid type")
    if isinstance(value, (int, float)):
        return str(Duration(time_ns=int(value) * MILLISECOND))
    raise TypeError("invalid type")


def add_date(moment: datetime, years: int, months: int, days: int) -> datetime:
    """Add calendar years, months and days, normalising overflowing dates.

    For example, adding one month to January 31st yields early March.
    """
    month_index = moment.month - 1 + months
    year = moment.year + years + month_index // 12
    month = month_index % 12 + 1
    first = moment.replace(year=year, month=month, day=1)
    return first + timedelta(days=moment.day - 1 + days)


def format_quoted(value: object) -> str:
    """Return a double-quoted representation of a value."""
    text = value if isinstance(value, str) else str(value)
    return json.dumps(text, ensure_ascii=False)