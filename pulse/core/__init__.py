"""Core package initialization."""
from pulse.core.config import settings
from pulse.core.database import Base, init_db
from pulse.core.redis import get_redis, close_redis

__all__ = ["settings", "Base", "init_db", "get_redis", "close_redis"]
