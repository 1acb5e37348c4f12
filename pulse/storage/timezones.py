"""Read-only scope timezone lookups."""
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from pulse.core.config import settings
from pulse.core.database import AsyncSessionLocal
from pulse.models import ScopeTimezone
from pulse.storage.local import read_json_array, safe_path_segment
from pulse.utils.time import timezone_or_default

logger = logging.getLogger(__name__)

TOWNS_FILE = "towns.json"


class TimezoneResolver(ABC):
    """Answers "which timezone does this scope live in?"."""

    def __init__(self, default_timezone: Optional[str] = None):
        self.default_timezone = default_timezone or settings.default_timezone

    @abstractmethod
    async def lookup(self, scope_key: str, tenant_id: Optional[str] = None) -> Optional[str]:
        """Raw configured timezone for a scope, or None."""
        pass

    async def resolve(self, scope_key: str, tenant_id: Optional[str] = None) -> str:
        """Configured timezone for a scope, falling back to the default when unset or invalid."""
        configured = await self.lookup(scope_key, tenant_id)
        resolved = timezone_or_default(configured, self.default_timezone)
        if configured and resolved != configured.strip():
            logger.warning(f"Invalid timezone {configured!r} for scope {scope_key}, using {resolved}")
        return resolved


class LocalTimezoneResolver(TimezoneResolver):
    """Reads `<tenant>/towns.json` entries of the form {"id": ..., "timezone": ...}."""

    def __init__(self, root: Optional[str] = None, default_timezone: Optional[str] = None):
        super().__init__(default_timezone)
        self.root = Path(root or settings.local_data_dir)

    async def lookup(self, scope_key: str, tenant_id: Optional[str] = None) -> Optional[str]:
        if not tenant_id:
            return None
        path = self.root / safe_path_segment(tenant_id) / TOWNS_FILE
        for entry in await asyncio.to_thread(read_json_array, path):
            if isinstance(entry, dict) and entry.get("id") == scope_key:
                value = entry.get("timezone")
                return value if isinstance(value, str) else None
        return None


class DatabaseTimezoneResolver(TimezoneResolver):
    """Reads the scope_timezones table."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        default_timezone: Optional[str] = None
    ):
        super().__init__(default_timezone)
        self.session_factory = session_factory or AsyncSessionLocal

    async def lookup(self, scope_key: str, tenant_id: Optional[str] = None) -> Optional[str]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ScopeTimezone.timezone).where(ScopeTimezone.scope_ref == scope_key)
            )
            return result.scalar_one_or_none()
