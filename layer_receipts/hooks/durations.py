"""
Duration parsing for hook delays.

Accepts a number of milliseconds or a short expression such as "10 minutes",
"1.5h" or "500ms". A bare numeric string is read as milliseconds.
"""

import math
import re

_SECOND = 1000
_MINUTE = _SECOND * 60
_HOUR = _MINUTE * 60
_DAY = _HOUR * 24
_WEEK = _DAY * 7
_YEAR = _DAY * 365.25

_UNITS_MS = {
    "ms": 1,
    "msec": 1,
    "msecs": 1,
    "millisecond": 1,
    "milliseconds": 1,
    "s": _SECOND,
    "sec": _SECOND,
    "secs": _SECOND,
    "second": _SECOND,
    "seconds": _SECOND,
    "m": _MINUTE,
    "min": _MINUTE,
    "mins": _MINUTE,
    "minute": _MINUTE,
    "minutes": _MINUTE,
    "h": _HOUR,
    "hr": _HOUR,
    "hrs": _HOUR,
    "hour": _HOUR,
    "hours": _HOUR,
    "d": _DAY,
    "day": _DAY,
    "days": _DAY,
    "w": _WEEK,
    "week": _WEEK,
    "weeks": _WEEK,
    "y": _YEAR,
    "yr": _YEAR,
    "yrs": _YEAR,
    "year": _YEAR,
    "years": _YEAR,
}

_DURATION_RE = re.compile(r"^(?P<value>\d*\.?\d+)\s*(?P<unit>[a-z]+)?$", re.IGNORECASE)


class InvalidDurationError(ValueError):
    """Raised when a delay cannot be turned into milliseconds."""


def parse_duration(value: int | float | str | None) -> int:
    """
    Normalize a delay to whole milliseconds.

    Args:
        value: Milliseconds as a number, or a duration expression.

    Returns:
        Delay in milliseconds (0 for None).

    Raises:
        InvalidDurationError: If the value is negative, not finite, or unparseable.
    """
    if value is None:
        return 0

    if isinstance(value, bool):
        raise InvalidDurationError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            raise InvalidDurationError(f"Invalid duration: {value!r}")
        return int(round(value))

    if not isinstance(value, str):
        raise InvalidDurationError(f"Invalid duration type: {type(value).__name__}")

    match = _DURATION_RE.match(value.strip())
    if not match:
        raise InvalidDurationError(f"Invalid duration: {value!r}")

    unit = (match.group("unit") or "ms").lower()
    if unit not in _UNITS_MS:
        raise InvalidDurationError(f"Unknown duration unit {unit!r} in {value!r}")

    return int(round(float(match.group("value")) * _UNITS_MS[unit]))
