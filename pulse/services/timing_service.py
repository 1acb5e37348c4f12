"""Per-brand post timing service backed by the shared model store."""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from pulse.core.config import settings
from pulse.schemas.model import StoredModel
from pulse.schemas.timing import (
    PostMetrics,
    PostNowDecision,
    PostPerformance,
    TimingModelData,
    TimingModelRecord,
)
from pulse.services.recompute_lock import RecomputeLock, build_recompute_lock
from pulse.services.timing_engine import build_timing_model, clamp_range_days, recommend_post_now
from pulse.storage import PulseStorage
from pulse.storage.factory import get_storage, get_timezone_resolver
from pulse.storage.local import read_json_array, safe_path_segment
from pulse.storage.timezones import TimezoneResolver
from pulse.utils.time import ensure_utc, is_stale, to_local, utcnow

logger = logging.getLogger(__name__)

MODEL_KIND = "post_timing"
MAX_LIST_LIMIT = 20

POSTS_FILE = "posts.json"
METRICS_FILE = "metrics.json"


def timing_scope_key(brand_id: str, platform: str) -> str:
    return f"{brand_id}:{platform}"


class PostHistorySource(ABC):
    """Read access to a brand's published posts and their metric snapshots."""

    @abstractmethod
    async def list_posts(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str,
        since: datetime
    ) -> List[PostPerformance]:
        """Posts for a brand/platform published at or after `since`."""
        pass


class LocalPostHistorySource(PostHistorySource):
    """
    Reads exported post history from the tenant directory.

    <tenant>/posts.json    [{"id", "brand_id", "platform", "posted_at"}, ...]
    <tenant>/metrics.json  [{"post_id", "views", "likes", ..., "created_at"}, ...]

    Metric snapshots are joined to posts by post_id; snapshots without a
    created_at, or created before `since`, are ignored. Malformed entries
    are skipped.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.local_data_dir)

    async def list_posts(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str,
        since: datetime
    ) -> List[PostPerformance]:
        if not tenant_id:
            return []
        tenant_dir = self.root / safe_path_segment(tenant_id)
        raw_posts = await asyncio.to_thread(read_json_array, tenant_dir / POSTS_FILE)
        raw_metrics = await asyncio.to_thread(read_json_array, tenant_dir / METRICS_FILE)
        cutoff = ensure_utc(since)

        metrics_by_post: Dict[str, List[PostMetrics]] = {}
        for item in raw_metrics:
            if not isinstance(item, dict) or not item.get("post_id"):
                continue
            created_at = item.get("created_at")
            if not created_at:
                logger.debug(f"Skipping undated metrics entry for post {item.get('post_id')}")
                continue
            try:
                if ensure_utc(datetime.fromisoformat(str(created_at))) < cutoff:
                    continue
                metrics_by_post.setdefault(str(item["post_id"]), []).append(PostMetrics.model_validate(item))
            except (ValueError, ValidationError):
                logger.warning(f"Skipping malformed metrics entry for post {item.get('post_id')}")

        posts: List[PostPerformance] = []
        for item in raw_posts:
            if not isinstance(item, dict):
                continue
            if item.get("brand_id") != brand_id or item.get("platform") != platform:
                continue
            try:
                post = PostPerformance.model_validate({
                    **item,
                    "metrics": metrics_by_post.get(str(item.get("id")), []),
                })
            except ValidationError as e:
                logger.warning(f"Skipping malformed post entry {item.get('id')}: {e.error_count()} error(s)")
                continue
            if post.posted_at >= cutoff:
                posts.append(post)

        posts.sort(key=lambda p: p.posted_at, reverse=True)
        return posts


class TimingService:
    """Builds, caches and serves best-time-to-post models per brand/platform."""

    def __init__(
        self,
        storage: PulseStorage,
        timezone_resolver: TimezoneResolver,
        post_source: PostHistorySource,
        lock: Optional[RecomputeLock] = None,
        stale_hours: Optional[int] = None
    ):
        self.storage = storage
        self.timezone_resolver = timezone_resolver
        self.post_source = post_source
        self.lock = lock
        self.stale_hours = stale_hours or settings.model_stale_hours

    @staticmethod
    def _to_record(stored: StoredModel) -> Optional[TimingModelRecord]:
        brand_id, _, platform = stored.scope_key.rpartition(":")
        try:
            model = TimingModelData.model_validate(stored.model)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed timing model for {stored.scope_key}: {e.error_count()} error(s)")
            return None
        return TimingModelRecord(
            id=stored.id,
            tenant_id=stored.tenant_id,
            brand_id=brand_id,
            platform=platform,
            model=model,
            computed_at=stored.computed_at,
        )

    async def read_cached(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str
    ) -> Optional[TimingModelRecord]:
        stored = await self.storage.read_model(tenant_id, timing_scope_key(brand_id, platform), MODEL_KIND)
        return self._to_record(stored) if stored else None

    async def recompute(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str,
        range_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> TimingModelRecord:
        """
        Rebuild the timing model for a brand/platform from its post history.

        Args:
            tenant_id: Owning tenant
            brand_id: Brand identifier
            platform: Publishing platform (e.g. "instagram")
            range_days: Lookback window, clamped to [7, 365] (default from config)
            now: Build time

        Returns:
            The stored TimingModelRecord
        """
        if self.lock is None:
            return await self._recompute(tenant_id, brand_id, platform, range_days, now)

        async with self.lock.hold(MODEL_KIND, timing_scope_key(brand_id, platform)) as acquired:
            if not acquired:
                cached = await self.read_cached(tenant_id, brand_id, platform)
                if cached:
                    return cached
            return await self._recompute(tenant_id, brand_id, platform, range_days, now)

    async def _recompute(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str,
        range_days: Optional[int],
        now: Optional[datetime]
    ) -> TimingModelRecord:
        now = ensure_utc(now or utcnow())
        days = clamp_range_days(range_days, settings.timing_range_days)
        timezone_str = await self.timezone_resolver.resolve(brand_id, tenant_id)

        posts = await self.post_source.list_posts(
            tenant_id, brand_id, platform, now - timedelta(days=days)
        )
        model = build_timing_model(posts, timezone_str, days, now)
        stored = await self.storage.upsert_model(
            tenant_id,
            timing_scope_key(brand_id, platform),
            MODEL_KIND,
            model.model_dump(mode="json"),
            now
        )

        logger.info(
            f"Recomputed timing model for {brand_id}/{platform}: {model.sample_size} posts, "
            f"best hours {model.best_hours}, fallback={model.fallback_used}"
        )
        return TimingModelRecord(
            id=stored.id,
            tenant_id=stored.tenant_id,
            brand_id=brand_id,
            platform=platform,
            model=model,
            computed_at=stored.computed_at,
        )

    async def get_model(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str,
        recompute_if_stale: bool = True,
        now: Optional[datetime] = None
    ) -> Optional[TimingModelRecord]:
        """Cached timing model, recomputed when missing or stale."""
        now = ensure_utc(now or utcnow())
        cached = await self.read_cached(tenant_id, brand_id, platform)
        if cached and not is_stale(cached.computed_at, self.stale_hours, now):
            return cached
        if not recompute_if_stale:
            return cached
        return await self.recompute(tenant_id, brand_id, platform, now=now)

    async def list_models(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        limit: int = MAX_LIST_LIMIT
    ) -> List[TimingModelRecord]:
        """Cached timing models for every platform of a brand, newest first."""
        limit = max(0, min(MAX_LIST_LIMIT, int(limit)))
        if limit == 0:
            return []
        rows = await self.storage.list_models(tenant_id, MODEL_KIND, f"{brand_id}:", limit)
        records = [self._to_record(row) for row in rows]
        return [r for r in records if r is not None and r.brand_id == brand_id]

    async def should_post_now(
        self,
        tenant_id: Optional[str],
        brand_id: str,
        platform: str,
        now: Optional[datetime] = None
    ) -> PostNowDecision:
        """Post-now decision for the brand's local time."""
        now = ensure_utc(now or utcnow())
        record = await self.get_model(tenant_id, brand_id, platform, now=now)
        timezone_str = await self.timezone_resolver.resolve(brand_id, tenant_id)
        return recommend_post_now(record.model, to_local(now, timezone_str))


def build_timing_service() -> TimingService:
    """TimingService wired to the configured storage backend."""
    return TimingService(
        storage=get_storage(),
        timezone_resolver=get_timezone_resolver(),
        post_source=LocalPostHistorySource(settings.local_data_dir),
        lock=build_recompute_lock(),
    )
