from __future__ import annotations

import re
from typing import Optional

from .errors import InvalidDuration

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY
MONTH = 30 * DAY
YEAR = 365 * DAY

# Longest finite span accepted; anything longer should be "perm".
MAX_DURATION = 100 * YEAR

# Single letters are case sensitive: "m" is minutes, "M" is months.
_LETTER_UNITS = {
    "s": 1,
    "m": MINUTE,
    "h": HOUR,
    "d": DAY,
    "w": WEEK,
    "M": MONTH,
    "y": YEAR,
}

_WORD_UNITS = {
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "min": MINUTE,
    "mins": MINUTE,
    "minute": MINUTE,
    "minutes": MINUTE,
    "hr": HOUR,
    "hrs": HOUR,
    "hour": HOUR,
    "hours": HOUR,
    "day": DAY,
    "days": DAY,
    "week": WEEK,
    "weeks": WEEK,
    "mo": MONTH,
    "month": MONTH,
    "months": MONTH,
    "year": YEAR,
    "years": YEAR,
}

INDEFINITE_WORDS = frozenset({"perm", "permanent", "indefinite", "forever", "inf"})

DURATION_PATTERN = re.compile(r"^\s*(?:\d+\s*[A-Za-z]+\s*)+$")
_TOKEN_RE = re.compile(r"(\d+)\s*([A-Za-z]+)")


def _unit_seconds(unit: str) -> Optional[int]:
    if len(unit) == 1:
        return _LETTER_UNITS.get(unit) or _LETTER_UNITS.get(unit.lower())
    return _WORD_UNITS.get(unit.lower())


def parse_duration(text: Optional[str]) -> Optional[int]:
    """Parse a human duration such as ``"1h"`` or ``"2d 12h"`` into seconds.

    Returns ``None`` for an indefinite action: either no text at all or one of
    the sentinel words ("perm", "permanent", ...). Raises ``InvalidDuration``
    for anything that does not match the grammar or is longer than
    ``MAX_DURATION``.
    """

    if text is None:
        return None
    stripped = text.strip()
    if stripped.lower() in INDEFINITE_WORDS:
        return None
    if not DURATION_PATTERN.match(stripped):
        raise InvalidDuration(text)

    total = 0
    for amount, unit in _TOKEN_RE.findall(stripped):
        seconds = _unit_seconds(unit)
        if seconds is None:
            raise InvalidDuration(text)
        total += int(amount) * seconds
    if total > MAX_DURATION:
        raise InvalidDuration(text)
    return total


_DISPLAY_UNITS = (
    ("year", YEAR),
    ("month", MONTH),
    ("week", WEEK),
    ("day", DAY),
    ("hour", HOUR),
    ("minute", MINUTE),
    ("second", 1),
)


def format_duration(seconds: Optional[int]) -> str:
    if seconds is None:
        return "permanent"
    if seconds <= 0:
        return "0 seconds"
    parts: list[str] = []
    remaining = int(seconds)
    for name, size in _DISPLAY_UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count} {name}{'s' if count != 1 else ''}")
    return " ".join(parts)
