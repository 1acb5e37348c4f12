"""Select storage implementations from configuration."""
import logging
from typing import Optional

from pulse.core.config import settings
from pulse.storage import PulseStorage
from pulse.storage.database import DatabaseStorage
from pulse.storage.local import LocalFileStorage
from pulse.storage.timezones import (
    DatabaseTimezoneResolver,
    LocalTimezoneResolver,
    TimezoneResolver,
)

logger = logging.getLogger(__name__)


def get_storage(mode: Optional[str] = None) -> PulseStorage:
    """Build the storage backend for the configured (or given) mode."""
    mode = mode or settings.storage_mode
    if mode == "database":
        logger.debug("Using database storage backend")
        return DatabaseStorage()
    if mode == "local":
        logger.debug(f"Using local file storage backend at {settings.local_data_dir}")
        return LocalFileStorage(settings.local_data_dir)
    raise ValueError(f"Unknown storage mode: {mode}")


def get_timezone_resolver(mode: Optional[str] = None) -> TimezoneResolver:
    """Build the timezone resolver matching the storage mode."""
    mode = mode or settings.storage_mode
    if mode == "database":
        return DatabaseTimezoneResolver()
    if mode == "local":
        return LocalTimezoneResolver(settings.local_data_dir)
    raise ValueError(f"Unknown storage mode: {mode}")
