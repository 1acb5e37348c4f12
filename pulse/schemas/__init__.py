"""Schemas package initialization."""
from pulse.schemas.signal import (
    Category,
    SignalKind,
    CATEGORIES,
    SIGNAL_KINDS,
    SignalInput,
    SignalRecord,
)
from pulse.schemas.model import (
    Window,
    CategoryTrend,
    PulseModelData,
    PulseModelRecord,
    StoredModel,
)
from pulse.schemas.timing import (
    PostMetrics,
    PostPerformance,
    HourScore,
    DayScore,
    TimingModelData,
    TimingModelRecord,
    PostNowDecision,
)

__all__ = [
    "Category",
    "SignalKind",
    "CATEGORIES",
    "SIGNAL_KINDS",
    "SignalInput",
    "SignalRecord",
    "Window",
    "CategoryTrend",
    "PulseModelData",
    "PulseModelRecord",
    "StoredModel",
    "PostMetrics",
    "PostPerformance",
    "HourScore",
    "DayScore",
    "TimingModelData",
    "TimingModelRecord",
    "PostNowDecision",
]
