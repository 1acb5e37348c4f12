"""Town pulse service: signal ingestion, cached models and batch recompute."""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from pulse.core.config import settings
from pulse.schemas.model import PulseModelData, PulseModelRecord, StoredModel
from pulse.schemas.signal import CATEGORIES, SignalInput, SignalRecord
from pulse.services.pulse_engine import build_pulse_model, clamp_range_days, clamp_weight
from pulse.services.recompute_lock import RecomputeLock, build_recompute_lock
from pulse.storage import PulseStorage, ScopeTarget
from pulse.storage.factory import get_storage, get_timezone_resolver
from pulse.storage.timezones import TimezoneResolver
from pulse.utils.time import ensure_utc, is_stale, resolve_day_hour, utcnow

logger = logging.getLogger(__name__)

MODEL_KIND = "town_pulse"

MIN_ACTIVE_LIMIT = 1
MAX_ACTIVE_LIMIT = 100


@dataclass
class BatchResult:
    """Outcome counts of one batch recompute pass."""
    due: int
    processed: int
    failed: int


def clamp_active_limit(limit: Optional[int]) -> int:
    value = settings.batch_size if limit is None else int(limit)
    return max(MIN_ACTIVE_LIMIT, min(MAX_ACTIVE_LIMIT, value))


class PulseService:
    """
    Orchestrates the town pulse lifecycle for any scope key.

    Signals flow in through record_signals, models are rebuilt on demand
    when the cached copy is older than the staleness threshold, and
    run_batch refreshes every recently active scope.
    """

    def __init__(
        self,
        storage: PulseStorage,
        timezone_resolver: TimezoneResolver,
        lock: Optional[RecomputeLock] = None,
        stale_hours: Optional[int] = None,
        concurrency: Optional[int] = None
    ):
        self.storage = storage
        self.timezone_resolver = timezone_resolver
        self.lock = lock
        self.stale_hours = stale_hours or settings.model_stale_hours
        self.concurrency = concurrency or settings.batch_concurrency

    async def record_signals(
        self,
        scope_key: str,
        category: str,
        signals: Iterable[Union[SignalInput, Mapping[str, Any]]],
        tenant_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Resolve, weight and append a batch of signals for one scope.

        Args:
            scope_key: Town id or "brand:platform" key
            category: Business category shared by the whole batch
            signals: SignalInput objects or plain dicts
            tenant_id: Owning tenant (required by the local file backend)
            now: Ingestion time used when a signal has no occurred_at

        Returns:
            Number of signal records written. Invalid items are logged and skipped.
        """
        scope_key = (scope_key or "").strip()
        items = list(signals or [])
        if not scope_key or not items:
            return 0
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")

        now = ensure_utc(now or utcnow())
        timezone_str = await self.timezone_resolver.resolve(scope_key, tenant_id)

        records: List[SignalRecord] = []
        for index, item in enumerate(items):
            try:
                signal = SignalInput.model_validate(item)
                occurred_at = ensure_utc(signal.occurred_at or now)
                day_of_week, hour = resolve_day_hour(occurred_at, timezone_str)
                records.append(SignalRecord(
                    id=str(uuid.uuid4()),
                    scope_key=scope_key,
                    tenant_id=tenant_id,
                    category=category,
                    signal_kind=signal.signal_kind,
                    day_of_week=day_of_week,
                    hour=hour,
                    weight=clamp_weight(signal.weight),
                    created_at=occurred_at,
                ))
            except ValidationError as e:
                logger.warning(
                    f"Skipping invalid signal #{index} for {scope_key}: {e.error_count()} error(s)"
                )
            except (ValueError, OverflowError) as e:
                logger.warning(f"Skipping signal #{index} for {scope_key}: cannot resolve its slot ({e})")

        if not records:
            return 0

        written = await self.storage.insert_signals(tenant_id, records)
        logger.info(f"Recorded {written}/{len(items)} signals for {scope_key} ({timezone_str})")
        return written

    def _to_record(self, stored: StoredModel) -> Optional[PulseModelRecord]:
        try:
            model = PulseModelData.model_validate(stored.model)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed cached model for {stored.scope_key}: {e.error_count()} error(s)")
            return None
        return PulseModelRecord(
            id=stored.id,
            scope_key=stored.scope_key,
            tenant_id=stored.tenant_id,
            model=model,
            computed_at=stored.computed_at,
        )

    async def read_cached(
        self,
        scope_key: str,
        tenant_id: Optional[str] = None
    ) -> Optional[PulseModelRecord]:
        """Cached model for a scope regardless of age."""
        stored = await self.storage.read_model(tenant_id, scope_key, MODEL_KIND)
        return self._to_record(stored) if stored else None

    async def get_model(
        self,
        scope_key: str,
        tenant_id: Optional[str] = None,
        recompute_if_stale: bool = True,
        now: Optional[datetime] = None
    ) -> Optional[PulseModelRecord]:
        """
        Return the cached model, rebuilding it when missing or stale.

        With recompute_if_stale=False the cached record is returned as-is
        (possibly stale), or None when nothing has been computed yet.
        """
        now = ensure_utc(now or utcnow())
        cached = await self.read_cached(scope_key, tenant_id)

        if cached and not is_stale(cached.computed_at, self.stale_hours, now):
            logger.debug(f"Serving cached pulse model for {scope_key}")
            return cached
        if not recompute_if_stale:
            return cached

        logger.info(f"Pulse model for {scope_key} is {'stale' if cached else 'missing'}, recomputing")
        return await self.recompute(scope_key, tenant_id, now=now)

    async def recompute(
        self,
        scope_key: str,
        tenant_id: Optional[str] = None,
        range_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> PulseModelRecord:
        """
        Rebuild and store the model for one scope from its signal window.

        When the advisory lock is enabled and another worker holds it, the
        cached model is returned instead (if there is one).
        """
        if self.lock is None:
            return await self._recompute(scope_key, tenant_id, range_days, now)

        async with self.lock.hold(MODEL_KIND, scope_key) as acquired:
            if not acquired:
                cached = await self.read_cached(scope_key, tenant_id)
                if cached:
                    return cached
            return await self._recompute(scope_key, tenant_id, range_days, now)

    async def _recompute(
        self,
        scope_key: str,
        tenant_id: Optional[str],
        range_days: Optional[int],
        now: Optional[datetime]
    ) -> PulseModelRecord:
        now = ensure_utc(now or utcnow())
        days = clamp_range_days(range_days, settings.default_range_days)
        since = now - timedelta(days=days)

        signals = await self.storage.query_signals(tenant_id, scope_key, since)
        model = build_pulse_model(signals, now)
        stored = await self.storage.upsert_model(
            tenant_id,
            scope_key,
            MODEL_KIND,
            model.model_dump(mode="json"),
            now
        )

        logger.info(
            f"Recomputed pulse model for {scope_key}: {len(signals)} signals over {days}d, "
            f"{len(model.busy_windows)} busy / {len(model.slow_windows)} slow windows, "
            f"event energy {model.event_energy}"
        )
        return PulseModelRecord(
            id=stored.id,
            scope_key=stored.scope_key,
            tenant_id=stored.tenant_id,
            model=model,
            computed_at=stored.computed_at,
        )

    async def list_active_scopes(
        self,
        limit: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> List[ScopeTarget]:
        """Scopes with signals inside the active window, most recent first."""
        now = ensure_utc(now or utcnow())
        since = now - timedelta(days=settings.active_scope_window_days)
        return await self.storage.list_active_scopes(since, clamp_active_limit(limit))

    async def run_batch(
        self,
        limit: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> BatchResult:
        """
        Recompute every active scope with bounded concurrency.

        A failing scope is logged and counted; it never stops the others.
        """
        now = ensure_utc(now or utcnow())
        targets = await self.list_active_scopes(limit, now)
        if not targets:
            logger.info("No active pulse scopes to recompute")
            return BatchResult(due=0, processed=0, failed=0)

        semaphore = asyncio.Semaphore(self.concurrency)

        async def recompute_target(target: ScopeTarget) -> bool:
            async with semaphore:
                try:
                    await self.recompute(target.scope_key, target.tenant_id, now=now)
                    return True
                except Exception as e:
                    logger.error(
                        f"Batch recompute failed for {target.scope_key} (tenant {target.tenant_id}): {e}",
                        exc_info=True
                    )
                    return False

        outcomes = await asyncio.gather(*(recompute_target(t) for t in targets))
        processed = sum(1 for ok in outcomes if ok)
        result = BatchResult(due=len(targets), processed=processed, failed=len(targets) - processed)

        logger.info(f"Pulse batch complete: {result.processed}/{result.due} processed, {result.failed} failed")
        return result


def build_pulse_service() -> PulseService:
    """PulseService wired to the configured storage backend."""
    return PulseService(
        storage=get_storage(),
        timezone_resolver=get_timezone_resolver(),
        lock=build_recompute_lock(),
    )
