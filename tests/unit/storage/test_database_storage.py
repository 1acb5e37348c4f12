"""Unit tests for the database storage backend (in-memory SQLite)."""
import pytest
from datetime import timedelta
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from pulse.core.database import Base
from pulse.models import PulseSignal, PulseModelRow
from pulse.storage.database import DatabaseStorage
from tests.conftest import make_signal


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
async def session_factory():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def db_storage(session_factory):
    return DatabaseStorage(session_factory)


# ============================================================================
# Tests for signals
# ============================================================================

@pytest.mark.unit
@pytest.mark.critical
class TestDatabaseSignals:
    """Test append-only signal rows."""

    async def test_insert_and_query_newest_first(self, db_storage, now):
        """✅ Rows round-trip, newest first, timestamps back in UTC."""
        older = make_signal(created_at=now - timedelta(days=3))
        newer = make_signal(created_at=now - timedelta(hours=2))

        assert await db_storage.insert_signals("tenant-1", [older, newer]) == 2

        records = await db_storage.query_signals("tenant-1", "town-1", now - timedelta(days=7))
        assert [r.id for r in records] == [newer.id, older.id]
        assert records[0].created_at == newer.created_at
        assert records[0].created_at.tzinfo is not None

    async def test_empty_insert(self, db_storage):
        """✅ Nothing to insert → 0."""
        assert await db_storage.insert_signals("tenant-1", []) == 0

    async def test_scope_shared_across_tenants(self, db_storage, now):
        """✅ Town scope aggregates every tenant's signals."""
        await db_storage.insert_signals("tenant-a", [make_signal(tenant_id="tenant-a", created_at=now)])
        await db_storage.insert_signals("tenant-b", [make_signal(tenant_id="tenant-b", created_at=now)])

        records = await db_storage.query_signals("tenant-a", "town-1", now - timedelta(days=1))
        assert {r.tenant_id for r in records} == {"tenant-a", "tenant-b"}

    async def test_window_filter(self, db_storage, now):
        """✅ Signals before `since` excluded."""
        await db_storage.insert_signals("tenant-1", [
            make_signal(created_at=now - timedelta(days=1)),
            make_signal(created_at=now - timedelta(days=60)),
        ])

        records = await db_storage.query_signals("tenant-1", "town-1", now - timedelta(days=45))
        assert len(records) == 1

    async def test_malformed_row_skipped(self, db_storage, session_factory, now):
        """✅ Row with an unknown kind dropped on read."""
        await db_storage.insert_signals("tenant-1", [make_signal(created_at=now)])
        async with session_factory() as db:
            db.add(PulseSignal(
                id="bad", scope_ref="town-1", category="cafe", signal_kind="party",
                day_of_week=1, hour=1, weight=1.0, created_at=now
            ))
            await db.commit()

        records = await db_storage.query_signals("tenant-1", "town-1", now - timedelta(days=1))
        assert len(records) == 1
        assert records[0].id != "bad"


# ============================================================================
# Tests for models
# ============================================================================

@pytest.mark.unit
class TestDatabaseModels:
    """Test model upsert/read/list."""

    async def test_upsert_single_row_and_stable_id(self, db_storage, session_factory, now):
        """✅ ON CONFLICT update keeps one row and its id."""
        first = await db_storage.upsert_model("tenant-1", "town-1", "town_pulse", {"v": 1}, now)
        second = await db_storage.upsert_model("tenant-1", "town-1", "town_pulse", {"v": 2}, now + timedelta(hours=1))

        assert first.id == second.id
        assert second.model == {"v": 2}
        assert second.computed_at == now + timedelta(hours=1)

        async with session_factory() as db:
            count = (await db.execute(select(func.count()).select_from(PulseModelRow))).scalar_one()
        assert count == 1

    async def test_read_model(self, db_storage, now):
        """✅ Read by scope and kind; kinds separate."""
        await db_storage.upsert_model("tenant-1", "b1:instagram", "post_timing", {"t": 1}, now)

        assert (await db_storage.read_model("tenant-1", "b1:instagram", "post_timing")).model == {"t": 1}
        assert await db_storage.read_model("tenant-1", "b1:instagram", "town_pulse") is None

    async def test_list_models(self, db_storage, now):
        """✅ Prefix filter (LIKE-escaped), tenant filter, newest first."""
        await db_storage.upsert_model("tenant-1", "b1:instagram", "post_timing", {}, now)
        await db_storage.upsert_model("tenant-1", "b1:tiktok", "post_timing", {}, now + timedelta(minutes=1))
        await db_storage.upsert_model("tenant-2", "b1_x:tiktok", "post_timing", {}, now + timedelta(minutes=2))

        rows = await db_storage.list_models("tenant-1", "post_timing", "b1:", 10)
        assert [r.scope_key for r in rows] == ["b1:tiktok", "b1:instagram"]

        assert await db_storage.list_models("tenant-2", "post_timing", "b1:", 10) == []


# ============================================================================
# Tests for list_active_scopes
# ============================================================================

@pytest.mark.unit
class TestDatabaseActiveScopes:
    """Test active scope aggregation."""

    async def test_grouped_by_scope(self, db_storage, now):
        """✅ One target per scope, ordered by latest signal."""
        await db_storage.insert_signals("tenant-1", [
            make_signal(scope_key="town-1", created_at=now - timedelta(days=3)),
            make_signal(scope_key="town-1", created_at=now - timedelta(days=2)),
            make_signal(scope_key="town-2", created_at=now - timedelta(hours=1)),
            make_signal(scope_key="town-3", created_at=now - timedelta(days=100)),
        ])

        targets = await db_storage.list_active_scopes(now - timedelta(days=45), 10)

        assert [t.scope_key for t in targets] == ["town-2", "town-1"]
        assert targets[1].last_signal_at == now - timedelta(days=2)
        assert all(t.tenant_id is None for t in targets)

    async def test_limit(self, db_storage, now):
        """✅ Limit respected."""
        await db_storage.insert_signals("tenant-1", [
            make_signal(scope_key=f"town-{i}", created_at=now - timedelta(hours=i)) for i in range(4)
        ])

        targets = await db_storage.list_active_scopes(now - timedelta(days=1), 2)
        assert [t.scope_key for t in targets] == ["town-0", "town-1"]
