"""Models package initialization."""
from pulse.models.signal import PulseSignal
from pulse.models.pulse_model import PulseModelRow
from pulse.models.scope_timezone import ScopeTimezone

__all__ = [
    "PulseSignal",
    "PulseModelRow",
    "ScopeTimezone",
]
