"""Utilities package initialization."""
from pulse.utils.time import (
    utcnow,
    ensure_utc,
    timezone_or_default,
    resolve_day_hour,
    is_stale,
    hour_label,
)

__all__ = [
    "utcnow",
    "ensure_utc",
    "timezone_or_default",
    "resolve_day_hour",
    "is_stale",
    "hour_label",
]
