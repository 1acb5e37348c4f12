"""Time utilities for slot resolution and timezone handling."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import pytz

from pulse.core.config import settings


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive values are assumed to already be UTC (SQLite hands them back
    without tzinfo).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def timezone_or_default(timezone_str: Optional[str], default: Optional[str] = None) -> str:
    """
    Return a valid IANA timezone name.

    Args:
        timezone_str: Candidate timezone name (may be empty or invalid)
        default: Fallback name (defaults to settings.default_timezone)

    Returns:
        timezone_str if pytz knows it, otherwise the fallback
    """
    fallback = default or settings.default_timezone
    value = (timezone_str or "").strip()
    if not value:
        return fallback
    try:
        pytz.timezone(value)
    except pytz.UnknownTimeZoneError:
        return fallback
    return value


def to_local(value: datetime, timezone_str: str) -> datetime:
    """Convert a datetime into the given timezone."""
    tz = pytz.timezone(timezone_or_default(timezone_str))
    return ensure_utc(value).astimezone(tz)


def day_of_week_index(value: datetime) -> int:
    """Day-of-week index with 0 = Sunday."""
    return (value.weekday() + 1) % 7


def resolve_day_hour(occurred_at: datetime, timezone_str: str) -> Tuple[int, int]:
    """
    Resolve the (day_of_week, hour) slot of a timestamp in a local timezone.

    Args:
        occurred_at: Event timestamp (naive values are treated as UTC)
        timezone_str: Scope timezone

    Returns:
        (day_of_week, hour) with day_of_week 0 = Sunday
    """
    local = to_local(occurred_at, timezone_str)
    return day_of_week_index(local), local.hour


def is_stale(computed_at: datetime, max_age_hours: int, now: Optional[datetime] = None) -> bool:
    """True when computed_at is more than max_age_hours before now."""
    reference = ensure_utc(now) if now is not None else utcnow()
    return reference - ensure_utc(computed_at) > timedelta(hours=max_age_hours)


def hour_label(hour: int) -> str:
    """Format an hour of day as a 12-hour clock label, e.g. '6:00 PM'."""
    normalized = hour % 24
    suffix = "AM" if normalized < 12 else "PM"
    return f"{normalized % 12 or 12}:00 {suffix}"
