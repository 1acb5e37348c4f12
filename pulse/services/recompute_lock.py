"""Optional Redis advisory lock around single-scope recomputes."""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from pulse.core.config import settings
from pulse.core.redis import get_redis

logger = logging.getLogger(__name__)


class RecomputeLock:
    """Per-scope advisory lock using SET NX EX with an owner token."""

    def __init__(self, redis=None, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.recompute_lock_seconds
        self._lock = asyncio.Lock()

    async def _get_redis(self):
        """Get Redis connection."""
        if self.redis is None:
            async with self._lock:
                if self.redis is None:
                    self.redis = await get_redis()
        return self.redis

    def _make_key(self, model_kind: str, scope_key: str) -> str:
        return f"recompute_lock:{model_kind}:{scope_key}"

    @asynccontextmanager
    async def hold(self, model_kind: str, scope_key: str) -> AsyncIterator[bool]:
        """
        Try to take the lock for one scope.

        Yields:
            True if this caller owns the lock, False if another recompute holds it
        """
        redis = await self._get_redis()
        key = self._make_key(model_kind, scope_key)
        token = uuid.uuid4().hex

        acquired = bool(await redis.set(key, token, nx=True, ex=self.ttl_seconds))
        if not acquired:
            logger.info(f"Recompute already in progress for {model_kind} {scope_key}")

        try:
            yield acquired
        finally:
            if acquired:
                # Only release a lock we still own; it may have expired and been retaken
                current = await redis.get(key)
                if isinstance(current, bytes):
                    current = current.decode()
                if current == token:
                    await redis.delete(key)


def build_recompute_lock() -> Optional[RecomputeLock]:
    """Lock configured for the process, or None when disabled."""
    if not settings.recompute_lock_enabled:
        return None
    return RecomputeLock()
