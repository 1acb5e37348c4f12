"""
Turn everyday business outcomes into town pulse signals.

Daily check-ins reach this module through the pulse API. The metrics and
autopilot helpers are the entry points for publishing workflows that run
outside this service.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pulse.schemas.signal import Category, SignalInput
from pulse.schemas.timing import PostMetrics
from pulse.services.pulse_service import PulseService
from pulse.services.timing_engine import engagement_score

logger = logging.getLogger(__name__)

BRAND_TYPE_CATEGORIES = {
    "cafe": "cafe",
    "loaded-tea": "cafe",
    "fitness-hybrid": "fitness",
    "gym": "fitness",
    "restaurant": "food",
    "retail": "retail",
    "salon": "salon",
    "service": "service",
    "barber": "service",
    "auto": "service",
}

DAILY_OUTCOMES = ("slow", "okay", "busy")


def category_from_brand_type(brand_type: str) -> Category:
    """Map a brand's business type to a pulse category (unknown types are "mixed")."""
    return BRAND_TYPE_CATEGORIES.get((brand_type or "").strip().lower(), "mixed")


def signals_from_metrics(
    metrics: PostMetrics,
    sales_notes: Optional[str] = None,
    occurred_at: Optional[datetime] = None
) -> List[SignalInput]:
    """
    Signals implied by one metrics report.

    Sales notes mentioning "busy"/"slow" become busy/slow signals, three or
    more redemptions count as busy, and any engagement becomes a
    post_success signal scaled by its size. A report with nothing else to
    say still yields a weak post_success signal.
    """
    notes = (sales_notes or "").lower()
    signals: List[SignalInput] = []

    if "busy" in notes:
        signals.append(SignalInput(signal_kind="busy", weight=1.2, occurred_at=occurred_at))
    if "slow" in notes:
        signals.append(SignalInput(signal_kind="slow", weight=1.2, occurred_at=occurred_at))
    if metrics.redemptions >= 3:
        signals.append(SignalInput(signal_kind="busy", weight=1.1, occurred_at=occurred_at))

    engagement = engagement_score(metrics)
    if engagement > 0:
        if engagement >= 12:
            weight = 1.3
        elif engagement >= 4:
            weight = 0.9
        else:
            weight = 0.35
        signals.append(SignalInput(signal_kind="post_success", weight=weight, occurred_at=occurred_at))

    if not signals:
        signals.append(SignalInput(signal_kind="post_success", weight=0.4, occurred_at=occurred_at))
    return signals


def signals_for_daily_outcome(
    outcome: str,
    occurred_at: Optional[datetime] = None
) -> List[SignalInput]:
    """Signals for an end-of-day check-in ("slow", "okay" or "busy")."""
    if outcome == "busy":
        return [SignalInput(signal_kind="busy", weight=1.2, occurred_at=occurred_at)]
    if outcome == "slow":
        return [SignalInput(signal_kind="slow", weight=1.2, occurred_at=occurred_at)]
    if outcome == "okay":
        return [
            SignalInput(signal_kind="busy", weight=0.35, occurred_at=occurred_at),
            SignalInput(signal_kind="slow", weight=0.2, occurred_at=occurred_at),
        ]
    raise ValueError(f"outcome must be one of {DAILY_OUTCOMES}")


def signals_for_autopilot(
    goal: str,
    had_upcoming_events: bool,
    occurred_at: Optional[datetime] = None
) -> List[SignalInput]:
    """Signals recorded after an autopilot publishing run."""
    signals = [SignalInput(signal_kind="post_success", weight=0.6, occurred_at=occurred_at)]
    if had_upcoming_events:
        signals.append(SignalInput(signal_kind="event_spike", weight=0.9, occurred_at=occurred_at))
    if goal == "slow_hours":
        signals.append(SignalInput(signal_kind="slow", weight=0.45, occurred_at=occurred_at))
    return signals


async def record_for_brand(
    service: PulseService,
    town_ref: Optional[str],
    brand_type: str,
    signals: List[SignalInput],
    tenant_id: Optional[str] = None
) -> int:
    """
    Record produced signals against the brand's town.

    Brands without a town contribute nothing and 0 is returned.
    """
    if not town_ref:
        logger.debug("Brand has no town, skipping pulse signals")
        return 0
    return await service.record_signals(
        town_ref,
        category_from_brand_type(brand_type),
        signals,
        tenant_id=tenant_id,
    )
