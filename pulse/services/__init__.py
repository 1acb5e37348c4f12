"""Services package initialization."""
from pulse.services.pulse_service import BatchResult, PulseService, build_pulse_service
from pulse.services.timing_service import (
    LocalPostHistorySource,
    PostHistorySource,
    TimingService,
    build_timing_service,
)
from pulse.services.recompute_lock import RecomputeLock

__all__ = [
    "BatchResult",
    "PulseService",
    "build_pulse_service",
    "PostHistorySource",
    "LocalPostHistorySource",
    "TimingService",
    "build_timing_service",
    "RecomputeLock",
]
