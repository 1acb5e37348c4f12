"""Shared FastAPI dependencies."""
from functools import lru_cache
from typing import Optional

from fastapi import Header

from pulse.services.pulse_service import PulseService, build_pulse_service
from pulse.services.timing_service import TimingService, build_timing_service


async def get_tenant_id(x_tenant_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Tenant from the X-Tenant-Id header (blank means none)."""
    if x_tenant_id is None:
        return None
    return x_tenant_id.strip() or None


@lru_cache
def get_pulse_service() -> PulseService:
    """Process-wide PulseService (keeps the local backend's file locks shared)."""
    return build_pulse_service()


@lru_cache
def get_timing_service() -> TimingService:
    """Process-wide TimingService."""
    return build_timing_service()
