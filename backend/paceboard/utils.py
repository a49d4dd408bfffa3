from __future__ import annotations

from typing import Any


def format_duration(minutes: int) -> str:
    """Render minutes as ``"2h 30m"``, ``"2h"`` or ``"30m"``."""
    minutes = abs(int(minutes))
    hours, rest = divmod(minutes, 60)
    if hours > 0 and rest > 0:
        return f"{hours}h {rest}m"
    if hours > 0:
        return f"{hours}h"
    return f"{rest}m"


def minutes_to_hours(minutes: int, digits: int = 1) -> float:
    return round(minutes / 60, digits)


def coerce_minutes(value: Any) -> int:
    """Lenient integer coercion for upstream duration values; junk counts as zero."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
    elif not isinstance(value, float):
        return 0
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return 0
