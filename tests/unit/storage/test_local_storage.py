"""Unit tests for the local file storage backend."""
import asyncio
import json
import pytest
from datetime import timedelta

from pulse.storage import MissingTenantError, PulseStorageError
from pulse.storage.local import (
    LocalFileStorage,
    read_json_array,
    safe_path_segment,
    write_json_atomic,
)
from tests.conftest import make_signal


TENANT = "tenant-1"


# ============================================================================
# Tests for file helpers
# ============================================================================

@pytest.mark.unit
class TestFileHelpers:
    """Test JSON document helpers."""

    def test_safe_path_segment(self):
        """✅ Unsafe characters replaced."""
        assert safe_path_segment("../etc/passwd") == "___etc_passwd"
        assert safe_path_segment("tenant-1_ok") == "tenant-1_ok"

    def test_missing_file_reads_empty(self, tmp_path):
        """✅ Missing document → []."""
        assert read_json_array(tmp_path / "nope.json") == []

    def test_corrupt_file_reads_empty(self, tmp_path):
        """✅ Invalid JSON → []."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        assert read_json_array(path) == []

    def test_non_array_reads_empty(self, tmp_path):
        """✅ JSON object instead of array → []."""
        path = tmp_path / "obj.json"
        path.write_text('{"a": 1}')
        assert read_json_array(path) == []

    def test_atomic_write_leaves_no_temp_files(self, tmp_path):
        """✅ Write creates the document and cleans up."""
        path = tmp_path / "nested" / "doc.json"
        write_json_atomic(path, [{"a": 1}])

        assert json.loads(path.read_text()) == [{"a": 1}]
        assert [p.name for p in path.parent.iterdir()] == ["doc.json"]


# ============================================================================
# Tests for signals
# ============================================================================

@pytest.mark.unit
@pytest.mark.critical
class TestLocalSignals:
    """Test signal append and query."""

    async def test_insert_and_query_newest_first(self, local_storage, now):
        """✅ Signals round-trip, newest first."""
        older = make_signal(created_at=now - timedelta(days=2))
        newer = make_signal(created_at=now - timedelta(hours=1))

        assert await local_storage.insert_signals(TENANT, [older]) == 1
        assert await local_storage.insert_signals(TENANT, [newer]) == 1

        records = await local_storage.query_signals(TENANT, "town-1", now - timedelta(days=7))
        assert [r.id for r in records] == [newer.id, older.id]

    async def test_query_filters_scope_and_window(self, local_storage, now):
        """✅ Other scopes and old signals excluded."""
        await local_storage.insert_signals(TENANT, [
            make_signal(created_at=now - timedelta(days=1)),
            make_signal(created_at=now - timedelta(days=50)),
            make_signal(scope_key="town-2", created_at=now),
        ])

        records = await local_storage.query_signals(TENANT, "town-1", now - timedelta(days=45))
        assert len(records) == 1

    async def test_malformed_records_skipped(self, local_storage, tmp_path, now):
        """✅ Bad rows dropped, good rows kept."""
        good = make_signal(created_at=now)
        path = tmp_path / TENANT / "town_pulse_signals.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps([
            good.model_dump(mode="json"),
            {"id": "x", "scope_key": "town-1", "signal_kind": "party"},
            "garbage",
        ]))

        records = await local_storage.query_signals(TENANT, "town-1", now - timedelta(days=1))
        assert [r.id for r in records] == [good.id]

    async def test_append_keeps_rows_the_schema_rejects(self, local_storage, tmp_path, now):
        """✅ Append never drops stored rows, even unreadable ones."""
        path = tmp_path / TENANT / "town_pulse_signals.json"
        path.parent.mkdir(parents=True)
        odd = {**make_signal(created_at=now).model_dump(mode="json"), "id": "odd", "category": "bakery"}
        path.write_text(json.dumps([odd]))

        assert await local_storage.insert_signals(TENANT, [make_signal(created_at=now)]) == 1

        rows = json.loads(path.read_text())
        assert len(rows) == 2
        assert rows[0] == odd

    async def test_append_refuses_corrupt_document(self, local_storage, tmp_path, now):
        """✅ Truncated document → PulseStorageError, file left untouched."""
        path = tmp_path / TENANT / "town_pulse_signals.json"
        path.parent.mkdir(parents=True)
        full = json.dumps([make_signal(created_at=now).model_dump(mode="json") for _ in range(5)])
        truncated = full[: len(full) // 2]
        path.write_text(truncated)

        with pytest.raises(PulseStorageError):
            await local_storage.insert_signals(TENANT, [make_signal(created_at=now)])

        assert path.read_text() == truncated

    async def test_append_refuses_non_array_document(self, local_storage, tmp_path, now):
        """✅ JSON object instead of array → PulseStorageError."""
        path = tmp_path / TENANT / "town_pulse_signals.json"
        path.parent.mkdir(parents=True)
        path.write_text('{"a": 1}')

        with pytest.raises(PulseStorageError):
            await local_storage.insert_signals(TENANT, [make_signal(created_at=now)])

        assert json.loads(path.read_text()) == {"a": 1}

    async def test_missing_tenant(self, local_storage, now):
        """✅ No tenant → MissingTenantError."""
        with pytest.raises(MissingTenantError):
            await local_storage.insert_signals(None, [make_signal()])
        with pytest.raises(MissingTenantError):
            await local_storage.query_signals("  ", "town-1", now)

    async def test_concurrent_appends_not_lost(self, local_storage, now):
        """✅ Concurrent inserts into one document all survive."""
        batches = [[make_signal(created_at=now)] for _ in range(10)]

        await asyncio.gather(*(local_storage.insert_signals(TENANT, b) for b in batches))

        records = await local_storage.query_signals(TENANT, "town-1", now - timedelta(days=1))
        assert len(records) == 10

    async def test_file_locks_released_after_use(self, local_storage, now):
        """✅ Per-file lock map does not grow with every tenant touched."""
        for i in range(5):
            await local_storage.insert_signals(f"tenant-{i}", [make_signal(tenant_id=f"tenant-{i}", created_at=now)])

        assert len(local_storage._locks) == 0


# ============================================================================
# Tests for models
# ============================================================================

@pytest.mark.unit
class TestLocalModels:
    """Test model upsert/read/list."""

    async def test_upsert_preserves_id(self, local_storage, now):
        """✅ Second upsert overwrites payload, keeps id."""
        first = await local_storage.upsert_model(TENANT, "town-1", "town_pulse", {"v": 1}, now)
        second = await local_storage.upsert_model(TENANT, "town-1", "town_pulse", {"v": 2}, now + timedelta(hours=1))

        assert first.id == second.id
        stored = await local_storage.read_model(TENANT, "town-1", "town_pulse")
        assert stored.model == {"v": 2}
        assert stored.computed_at == now + timedelta(hours=1)

    async def test_one_row_per_scope(self, local_storage, tmp_path, now):
        """✅ Repeated upserts keep exactly one row per scope."""
        for i in range(3):
            await local_storage.upsert_model(TENANT, "town-1", "town_pulse", {"v": i}, now)
        await local_storage.upsert_model(TENANT, "town-2", "town_pulse", {"v": 0}, now)

        rows = json.loads((tmp_path / TENANT / "town_pulse_models.json").read_text())
        assert sorted(r["scope_key"] for r in rows) == ["town-1", "town-2"]

    async def test_upsert_keeps_other_rows_verbatim(self, local_storage, tmp_path, now):
        """✅ Rows for other scopes survive an upsert unchanged."""
        path = tmp_path / TENANT / "town_pulse_models.json"
        path.parent.mkdir(parents=True)
        odd = {"id": "odd", "scope_key": "town-2", "model_kind": "town_pulse"}
        path.write_text(json.dumps([odd]))

        await local_storage.upsert_model(TENANT, "town-1", "town_pulse", {"v": 1}, now)

        rows = json.loads(path.read_text())
        assert rows[0] == odd
        assert rows[1]["scope_key"] == "town-1"

    async def test_upsert_refuses_corrupt_document(self, local_storage, tmp_path, now):
        """✅ Unreadable models document → PulseStorageError, file left untouched."""
        path = tmp_path / TENANT / "town_pulse_models.json"
        path.parent.mkdir(parents=True)
        path.write_text("[{\"id\": ")

        with pytest.raises(PulseStorageError):
            await local_storage.upsert_model(TENANT, "town-1", "town_pulse", {"v": 1}, now)

        assert path.read_text() == "[{\"id\": "

    async def test_read_missing(self, local_storage):
        """✅ Unknown scope → None."""
        assert await local_storage.read_model(TENANT, "town-9", "town_pulse") is None

    async def test_model_kinds_separate(self, local_storage, now):
        """✅ Timing models live in their own document."""
        await local_storage.upsert_model(TENANT, "b1:instagram", "post_timing", {"t": 1}, now)

        assert await local_storage.read_model(TENANT, "b1:instagram", "town_pulse") is None
        assert (await local_storage.read_model(TENANT, "b1:instagram", "post_timing")).model == {"t": 1}

    async def test_unknown_model_kind(self, local_storage, now):
        """✅ Unknown kind → ValueError."""
        with pytest.raises(ValueError):
            await local_storage.read_model(TENANT, "town-1", "weather")

    async def test_list_models_prefix_and_order(self, local_storage, now):
        """✅ Prefix filter, newest first, limited."""
        await local_storage.upsert_model(TENANT, "b1:instagram", "post_timing", {}, now)
        await local_storage.upsert_model(TENANT, "b1:tiktok", "post_timing", {}, now + timedelta(minutes=1))
        await local_storage.upsert_model(TENANT, "b2:tiktok", "post_timing", {}, now + timedelta(minutes=2))

        rows = await local_storage.list_models(TENANT, "post_timing", "b1:", 10)
        assert [r.scope_key for r in rows] == ["b1:tiktok", "b1:instagram"]
        assert len(await local_storage.list_models(TENANT, "post_timing", "b1:", 1)) == 1


# ============================================================================
# Tests for list_active_scopes
# ============================================================================

@pytest.mark.unit
class TestLocalActiveScopes:
    """Test active scope discovery across tenants."""

    async def test_across_tenants(self, local_storage, now):
        """✅ Scopes from every tenant, most recent first, old ones excluded."""
        await local_storage.insert_signals("tenant-a", [make_signal(scope_key="town-1", created_at=now - timedelta(days=2))])
        await local_storage.insert_signals("tenant-b", [make_signal(scope_key="town-2", created_at=now - timedelta(hours=1))])
        await local_storage.insert_signals("tenant-b", [make_signal(scope_key="town-3", created_at=now - timedelta(days=90))])

        targets = await local_storage.list_active_scopes(now - timedelta(days=45), 10)

        assert [(t.scope_key, t.tenant_id) for t in targets] == [("town-2", "tenant-b"), ("town-1", "tenant-a")]

    async def test_limit(self, local_storage, now):
        """✅ Limit applied after ordering."""
        for i in range(5):
            await local_storage.insert_signals(TENANT, [make_signal(scope_key=f"town-{i}", created_at=now - timedelta(hours=i))])

        targets = await local_storage.list_active_scopes(now - timedelta(days=1), 2)
        assert [t.scope_key for t in targets] == ["town-0", "town-1"]

    async def test_empty_root(self, tmp_path, now):
        """✅ Missing data dir → []."""
        storage = LocalFileStorage(str(tmp_path / "missing"))
        assert await storage.list_active_scopes(now, 10) == []
