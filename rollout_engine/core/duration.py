"""Pause duration parsing.

A pause duration is stored either as an integer (seconds) or as a string. The
string is tried first as a bare integer ("30" means 30 seconds) and only then
as a unit-suffixed duration ("30s", "5m", "1h30m", "1.5h").
"""

import re
from fractions import Fraction
from typing import Optional, Union

INVALID_DURATION = -1

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_BARE_INT = re.compile(r"[+-]?[0-9]+")
_UNIT_DURATION = re.compile(r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:ns|us|µs|μs|ms|s|m|h))+")
_COMPONENT = re.compile(r"([0-9]+\.?[0-9]*|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")

_UNIT_SECONDS = {
    "ns": Fraction(1, 1_000_000_000),
    "us": Fraction(1, 1_000_000),
    "µs": Fraction(1, 1_000_000),  # U+00B5 micro sign
    "μs": Fraction(1, 1_000_000),  # U+03BC greek mu
    "ms": Fraction(1, 1_000),
    "s": Fraction(1),
    "m": Fraction(60),
    "h": Fraction(3600),
}


def parse_unit_duration(value: str) -> Optional[int]:
    """Parse "1h30m" style strings into whole seconds (truncated), None on error."""
    if value in ("0", "+0", "-0"):
        return 0
    if not _UNIT_DURATION.fullmatch(value):
        return None

    negative = value.startswith("-")
    total = Fraction(0)
    for number, unit in _COMPONENT.findall(value.lstrip("+-")):
        total += Fraction(number) * _UNIT_SECONDS[unit]

    seconds = int(total)  # truncates toward zero
    return -seconds if negative else seconds


def resolve_duration_seconds(value: Optional[Union[int, str]]) -> int:
    """
    Resolve a pause duration to seconds.

    Returns:
        0 when no duration is set, the number of seconds otherwise, or
        INVALID_DURATION (-1) when the value cannot be interpreted. Negative
        strings and values outside the int32 range are invalid.
    """
    if value is None:
        return 0

    if isinstance(value, bool):
        return INVALID_DURATION

    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return value
        return INVALID_DURATION

    if not isinstance(value, str):
        return INVALID_DURATION

    # Special case: no unit means seconds
    if _BARE_INT.fullmatch(value):
        seconds = int(value)
        if INT32_MIN <= seconds <= INT32_MAX:
            return seconds if seconds >= 0 else INVALID_DURATION
        # Out of int32 range and no unit, so the unit parse below fails too
        return INVALID_DURATION

    seconds = parse_unit_duration(value)
    if seconds is None or seconds < 0 or seconds > INT32_MAX:
        return INVALID_DURATION
    return seconds


def is_valid_duration(value: Optional[Union[int, str]]) -> bool:
    return resolve_duration_seconds(value) >= 0
