"""API routes package initialization."""
from pulse.api.routes import health, pulse, timing, jobs

__all__ = ["health", "pulse", "timing", "jobs"]
