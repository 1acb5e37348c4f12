"""Shared-backend storage: signals and models as rows in SQL tables."""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import select, desc, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse.core.database import AsyncSessionLocal
from pulse.models import PulseSignal, PulseModelRow
from pulse.schemas.model import StoredModel
from pulse.schemas.signal import SignalRecord
from pulse.storage import PulseStorage, ScopeTarget
from pulse.utils.time import ensure_utc

logger = logging.getLogger(__name__)

# Upper bound on rows pulled for one recompute
SIGNAL_QUERY_LIMIT = 6000


def _to_signal_record(row: PulseSignal) -> SignalRecord:
    return SignalRecord(
        id=row.id,
        scope_key=row.scope_ref,
        tenant_id=row.tenant_id,
        category=row.category,
        signal_kind=row.signal_kind,
        day_of_week=row.day_of_week,
        hour=row.hour,
        weight=row.weight,
        created_at=row.created_at,
    )


def _to_stored_model(row: PulseModelRow) -> StoredModel:
    return StoredModel(
        id=row.id,
        scope_key=row.scope_ref,
        model_kind=row.model_kind,
        tenant_id=row.tenant_id,
        model=row.model,
        computed_at=row.computed_at,
    )


class DatabaseStorage(PulseStorage):
    """
    SQL backend for shared deployments.

    Town pulse scopes are community-wide: tenant_id is recorded on each
    signal for auditing, but reads aggregate every tenant's signals for the
    scope. The model table holds one row per (scope_ref, model_kind),
    enforced by a unique constraint and written with ON CONFLICT DO UPDATE.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    @staticmethod
    def _insert_for(session: AsyncSession):
        """Dialect-specific INSERT construct supporting ON CONFLICT."""
        if session.get_bind().dialect.name == "postgresql":
            return pg_insert
        return sqlite_insert

    async def insert_signals(
        self,
        tenant_id: Optional[str],
        records: List[SignalRecord]
    ) -> int:
        if not records:
            return 0

        async with self.session_factory() as db:
            db.add_all([
                PulseSignal(
                    id=r.id,
                    tenant_id=r.tenant_id or tenant_id,
                    scope_ref=r.scope_key,
                    category=r.category,
                    signal_kind=r.signal_kind,
                    day_of_week=r.day_of_week,
                    hour=r.hour,
                    weight=r.weight,
                    created_at=r.created_at,
                )
                for r in records
            ])
            await db.commit()

        logger.debug(f"Inserted {len(records)} signal rows")
        return len(records)

    async def query_signals(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        since: datetime
    ) -> List[SignalRecord]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PulseSignal)
                .where(
                    PulseSignal.scope_ref == scope_key,
                    PulseSignal.created_at >= ensure_utc(since)
                )
                .order_by(desc(PulseSignal.created_at))
                .limit(SIGNAL_QUERY_LIMIT)
            )
            rows = result.scalars().all()

        records = []
        for row in rows:
            try:
                records.append(_to_signal_record(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed signal row {row.id}: {e.error_count()} error(s)")
        return records

    async def upsert_model(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        model_kind: str,
        model: Dict[str, Any],
        computed_at: datetime
    ) -> StoredModel:
        async with self.session_factory() as db:
            insert = self._insert_for(db)
            stmt = insert(PulseModelRow).values(
                id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                scope_ref=scope_key,
                model_kind=model_kind,
                model=model,
                computed_at=ensure_utc(computed_at),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["scope_ref", "model_kind"],
                set_={
                    "model": stmt.excluded.model,
                    "computed_at": stmt.excluded.computed_at,
                    "tenant_id": stmt.excluded.tenant_id,
                }
            )
            await db.execute(stmt)
            await db.commit()

            result = await db.execute(
                select(PulseModelRow).where(
                    PulseModelRow.scope_ref == scope_key,
                    PulseModelRow.model_kind == model_kind
                )
            )
            row = result.scalar_one()
            return _to_stored_model(row)

    async def read_model(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        model_kind: str
    ) -> Optional[StoredModel]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(PulseModelRow).where(
                    PulseModelRow.scope_ref == scope_key,
                    PulseModelRow.model_kind == model_kind
                )
            )
            row = result.scalar_one_or_none()

        if row is None:
            return None
        try:
            return _to_stored_model(row)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed model row for {scope_key}: {e.error_count()} error(s)")
            return None

    async def list_models(
        self,
        tenant_id: Optional[str],
        model_kind: str,
        scope_prefix: str,
        limit: int
    ) -> List[StoredModel]:
        query = (
            select(PulseModelRow)
            .where(
                PulseModelRow.model_kind == model_kind,
                PulseModelRow.scope_ref.startswith(scope_prefix, autoescape=True)
            )
            .order_by(desc(PulseModelRow.computed_at))
            .limit(limit)
        )
        if tenant_id:
            query = query.where(PulseModelRow.tenant_id == tenant_id)

        async with self.session_factory() as db:
            result = await db.execute(query)
            rows = result.scalars().all()

        models = []
        for row in rows:
            try:
                models.append(_to_stored_model(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed model row {row.id}: {e.error_count()} error(s)")
        return models

    async def list_active_scopes(
        self,
        since: datetime,
        limit: int
    ) -> List[ScopeTarget]:
        latest = func.max(PulseSignal.created_at).label("latest")
        async with self.session_factory() as db:
            result = await db.execute(
                select(PulseSignal.scope_ref, latest)
                .where(PulseSignal.created_at >= ensure_utc(since))
                .group_by(PulseSignal.scope_ref)
                .order_by(desc(latest))
                .limit(limit)
            )
            rows = result.all()

        return [
            ScopeTarget(scope_key=scope_ref, tenant_id=None, last_signal_at=ensure_utc(last_at))
            for scope_ref, last_at in rows
        ]
