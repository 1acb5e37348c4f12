"""Core town pulse engine: turns weighted signals into a recommendation model."""
import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from pulse.schemas.model import CategoryTrend, PulseModelData, Window
from pulse.schemas.signal import SignalRecord
from pulse.utils.time import ensure_utc, utcnow


MIN_WEIGHT = 0.05
MAX_WEIGHT = 50.0

MIN_RANGE_DAYS = 7
MAX_RANGE_DAYS = 90
DEFAULT_RANGE_DAYS = 45

MAX_WINDOWS = 4
MAX_CATEGORY_TRENDS = 4

# Contribution of each signal kind to a slot's busy total
POST_SUCCESS_BUSY_FACTOR = 0.7
EVENT_SPIKE_BUSY_FACTOR = 0.85

RECENT_EVENT_DAYS = 14
EVENT_ENERGY_HIGH = 8.0
EVENT_ENERGY_MEDIUM = 2.0

TREND_UP = 8.0
TREND_STEADY = 3.0

SEASONAL_NOTES = {
    "holiday": "Holiday season can amplify weekend and evening momentum.",
    "spring": "Spring routines often lift weekday stop-ins and after-work traffic.",
    "summer": "Summer schedules can shift traffic toward afternoons and weekends.",
    "fall": "Fall community rhythms can increase event-driven local activity.",
}


def clamp_weight(weight: Optional[float], fallback: float = 1.0) -> float:
    """
    Clamp a signal weight into [MIN_WEIGHT, MAX_WEIGHT].

    Missing or non-finite weights take the fallback before clamping.
    """
    candidate = fallback
    if weight is not None:
        try:
            value = float(weight)
        except (TypeError, ValueError):
            value = math.nan
        if math.isfinite(value):
            candidate = value
    return max(MIN_WEIGHT, min(MAX_WEIGHT, candidate))


def clamp_range_days(range_days: Optional[int], default: int = DEFAULT_RANGE_DAYS) -> int:
    """Clamp a lookback window into [MIN_RANGE_DAYS, MAX_RANGE_DAYS]."""
    value = default if range_days is None else int(range_days)
    return max(MIN_RANGE_DAYS, min(MAX_RANGE_DAYS, value))


def seasonal_note(now: Optional[datetime] = None) -> str:
    """Fixed note for the calendar month of `now` (UTC)."""
    month = ensure_utc(now or utcnow()).month
    if month >= 11 or month <= 1:
        return SEASONAL_NOTES["holiday"]
    if 2 <= month <= 4:
        return SEASONAL_NOTES["spring"]
    if 5 <= month <= 8:
        return SEASONAL_NOTES["summer"]
    return SEASONAL_NOTES["fall"]


def classify_event_energy(recent_event_weight: float) -> str:
    if recent_event_weight >= EVENT_ENERGY_HIGH:
        return "high"
    if recent_event_weight >= EVENT_ENERGY_MEDIUM:
        return "medium"
    return "low"


def classify_trend(total_weight: float) -> str:
    if total_weight >= TREND_UP:
        return "up"
    if total_weight >= TREND_STEADY:
        return "steady"
    return "down"


def bucket_signals(
    signals: Iterable[SignalRecord],
    now: datetime
) -> Tuple[Dict[Tuple[int, int], List[float]], Dict[str, float], float]:
    """
    Accumulate signals per slot and per category.

    Sums use math.fsum so totals do not depend on signal order.

    Returns:
        (slots, category_weights, recent_event_weight) where slots maps
        (dow, hour) -> [busy_total, slow_total]
    """
    parts: Dict[Tuple[int, int], Tuple[List[float], List[float]]] = {}
    category_parts: Dict[str, List[float]] = {}
    recent_event_parts: List[float] = []
    recent_cutoff = ensure_utc(now) - timedelta(days=RECENT_EVENT_DAYS)

    for signal in signals:
        busy, slow = parts.setdefault((signal.day_of_week, signal.hour), ([], []))

        if signal.signal_kind == "busy":
            busy.append(signal.weight)
        elif signal.signal_kind == "slow":
            slow.append(signal.weight)
        elif signal.signal_kind == "post_success":
            busy.append(signal.weight * POST_SUCCESS_BUSY_FACTOR)
        elif signal.signal_kind == "event_spike":
            busy.append(signal.weight * EVENT_SPIKE_BUSY_FACTOR)
            if signal.created_at >= recent_cutoff:
                recent_event_parts.append(signal.weight)

        category_parts.setdefault(signal.category, []).append(signal.weight)

    slots = {slot: [math.fsum(busy), math.fsum(slow)] for slot, (busy, slow) in parts.items()}
    category_weights = {category: math.fsum(ws) for category, ws in category_parts.items()}
    return slots, category_weights, math.fsum(recent_event_parts)


def select_windows(
    slots: Dict[Tuple[int, int], List[float]],
    sign: int
) -> List[Window]:
    """
    Pick the strongest net-positive slots.

    Args:
        slots: (dow, hour) -> [busy_total, slow_total]
        sign: +1 ranks by busy - slow, -1 ranks by slow - busy

    Returns:
        Up to MAX_WINDOWS windows, strongest first, ties by (dow, hour)
    """
    scored = [
        (sign * (busy - slow), dow, hour)
        for (dow, hour), (busy, slow) in slots.items()
    ]
    ranked = sorted(
        (row for row in scored if row[0] > 0),
        key=lambda row: (-row[0], row[1], row[2])
    )
    return [Window(dow=dow, hour=hour) for _, dow, hour in ranked[:MAX_WINDOWS]]


def build_pulse_model(
    signals: Iterable[SignalRecord],
    now: Optional[datetime] = None
) -> PulseModelData:
    """
    Build the town pulse model for one scope.

    Pure function: the result depends only on the signals and `now`
    (which decides "recent" event energy and the seasonal note).

    Args:
        signals: Signal records already limited to the lookback window
        now: Build time (defaults to current UTC time)

    Returns:
        PulseModelData; empty input yields empty lists and low event energy
    """
    now = ensure_utc(now or utcnow())
    slots, category_weights, recent_event_weight = bucket_signals(signals, now)

    top_categories = sorted(
        category_weights.items(),
        key=lambda item: (-item[1], item[0])
    )[:MAX_CATEGORY_TRENDS]

    return PulseModelData(
        busy_windows=select_windows(slots, 1),
        slow_windows=select_windows(slots, -1),
        event_energy=classify_event_energy(recent_event_weight),
        seasonal_notes=seasonal_note(now),
        category_trends=[
            CategoryTrend(category=category, trend=classify_trend(total))
            for category, total in top_categories
        ],
    )
