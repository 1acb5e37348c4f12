"""Shared pytest fixtures for town pulse tests."""
import uuid
import pytest
from datetime import datetime, timezone
from typing import List, Optional

from pulse.schemas.signal import SignalRecord
from pulse.schemas.timing import PostMetrics, PostPerformance
from pulse.storage.local import LocalFileStorage
from pulse.storage.timezones import TimezoneResolver


# Wednesday 2026-03-04 18:00 UTC (12:00 in America/Chicago, before DST)
FIXED_NOW = datetime(2026, 3, 4, 18, 0, 0, tzinfo=timezone.utc)


class StaticTimezoneResolver(TimezoneResolver):
    """Resolver that reports the same configured timezone for every scope."""

    def __init__(self, configured: Optional[str] = "UTC", default_timezone: str = "America/Chicago"):
        super().__init__(default_timezone)
        self.configured = configured

    async def lookup(self, scope_key: str, tenant_id: Optional[str] = None) -> Optional[str]:
        return self.configured


def make_signal(
    signal_kind: str = "busy",
    dow: int = 2,
    hour: int = 18,
    weight: float = 1.0,
    category: str = "cafe",
    created_at: datetime = None,
    scope_key: str = "town-1",
    tenant_id: str = "tenant-1"
) -> SignalRecord:
    """Factory function to create SignalRecord instances for testing."""
    return SignalRecord(
        id=str(uuid.uuid4()),
        scope_key=scope_key,
        tenant_id=tenant_id,
        category=category,
        signal_kind=signal_kind,
        day_of_week=dow,
        hour=hour,
        weight=weight,
        created_at=created_at or FIXED_NOW,
    )


def make_post(
    posted_at: datetime,
    metrics: List[dict] = None,
    platform: str = "instagram",
    post_id: str = None
) -> PostPerformance:
    """Factory function to create PostPerformance instances for testing."""
    return PostPerformance(
        id=post_id or str(uuid.uuid4()),
        platform=platform,
        posted_at=posted_at,
        metrics=[PostMetrics(**m) for m in (metrics or [])],
    )


@pytest.fixture
def now():
    """Fixed reference time for deterministic tests."""
    return FIXED_NOW


@pytest.fixture
def utc_resolver():
    """Timezone resolver that places every scope in UTC."""
    return StaticTimezoneResolver("UTC")


@pytest.fixture
def local_storage(tmp_path):
    """File-backed storage rooted in a temporary directory."""
    return LocalFileStorage(str(tmp_path))
