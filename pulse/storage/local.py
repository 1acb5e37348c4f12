"""Local-file storage backend: per-tenant JSON documents on disk."""
import asyncio
import json
import logging
import os
import re
import tempfile
import uuid
import weakref
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from pulse.core.config import settings
from pulse.schemas.model import StoredModel
from pulse.schemas.signal import SignalRecord
from pulse.storage import MissingTenantError, PulseStorage, PulseStorageError, ScopeTarget
from pulse.utils.time import ensure_utc

logger = logging.getLogger(__name__)

SIGNALS_FILE = "town_pulse_signals.json"
MODEL_FILES = {
    "town_pulse": "town_pulse_models.json",
    "post_timing": "post_timing_models.json",
}


def safe_path_segment(value: str) -> str:
    """Replace anything that is not safe in a directory name."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", value)


def read_json_array(path: Path, strict: bool = False) -> List[Any]:
    """
    Read a JSON array document.

    A missing document reads as empty. An unreadable or non-array document
    reads as empty too, unless strict is set, in which case it raises
    PulseStorageError so callers about to rewrite the file leave it alone.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return []
    except json.JSONDecodeError as e:
        if strict:
            raise PulseStorageError(f"Refusing to rewrite unreadable JSON document {path}: {e}") from e
        logger.warning(f"Ignoring unreadable JSON document {path}: {e}")
        return []

    if not isinstance(data, list):
        if strict:
            raise PulseStorageError(
                f"Refusing to rewrite JSON document {path}: expected an array, got {type(data).__name__}"
            )
        logger.warning(f"Ignoring JSON document {path}: expected an array, got {type(data).__name__}")
        return []
    return data


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temp file in the same directory, then rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", dir=path.parent, suffix=".tmp", delete=False, encoding="utf-8"
    ) as tmp_file:
        tmp_name = tmp_file.name
        try:
            json.dump(data, tmp_file, indent=2)
            tmp_file.write("\n")
        except Exception:
            tmp_file.close()
            os.unlink(tmp_name)
            raise

    os.replace(tmp_name, path)


def _parse_signals(items: List[Any], source: Path) -> List[SignalRecord]:
    records = []
    for item in items:
        try:
            records.append(SignalRecord.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed signal record in {source}: {e.error_count()} error(s)")
    return records


def _parse_models(items: List[Any], source: Path) -> List[StoredModel]:
    rows = []
    for item in items:
        try:
            rows.append(StoredModel.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed model row in {source}: {e.error_count()} error(s)")
    return rows


class LocalFileStorage(PulseStorage):
    """
    JSON-on-disk backend.

    Layout under the root directory:
        <tenant>/town_pulse_signals.json   all signals for the tenant
        <tenant>/town_pulse_models.json    one cached town pulse model per scope
        <tenant>/post_timing_models.json   one cached timing model per brand:platform

    Read-modify-write cycles on a document are serialized with a per-file
    asyncio.Lock, so this backend assumes a single writer process.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.local_data_dir)
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def _tenant_dir(self, tenant_id: Optional[str]) -> Path:
        if not tenant_id or not tenant_id.strip():
            raise MissingTenantError("tenant_id is required for local file storage")
        return self.root / safe_path_segment(tenant_id.strip())

    def _signals_path(self, tenant_id: Optional[str]) -> Path:
        return self._tenant_dir(tenant_id) / SIGNALS_FILE

    def _models_path(self, tenant_id: Optional[str], model_kind: str) -> Path:
        filename = MODEL_FILES.get(model_kind)
        if filename is None:
            raise ValueError(f"Unknown model kind: {model_kind}")
        return self._tenant_dir(tenant_id) / filename

    def _lock_for(self, path: Path) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock

    async def _read_signals(self, path: Path) -> List[SignalRecord]:
        return _parse_signals(await asyncio.to_thread(read_json_array, path), path)

    async def _read_models(self, path: Path) -> List[StoredModel]:
        return _parse_models(await asyncio.to_thread(read_json_array, path), path)

    async def insert_signals(
        self,
        tenant_id: Optional[str],
        records: List[SignalRecord]
    ) -> int:
        path = self._signals_path(tenant_id)
        if not records:
            return 0

        async with self._lock_for(path):
            # Stored rows are carried over verbatim, even ones the schema no longer accepts
            merged = await asyncio.to_thread(read_json_array, path, True)
            merged.extend(r.model_dump(mode="json") for r in records)
            await asyncio.to_thread(write_json_atomic, path, merged)

        logger.debug(f"Appended {len(records)} signals to {path} ({len(merged)} total)")
        return len(records)

    async def query_signals(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        since: datetime
    ) -> List[SignalRecord]:
        path = self._signals_path(tenant_id)
        cutoff = ensure_utc(since)
        records = [
            r for r in await self._read_signals(path)
            if r.scope_key == scope_key and r.created_at >= cutoff
        ]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    async def upsert_model(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        model_kind: str,
        model: Dict[str, Any],
        computed_at: datetime
    ) -> StoredModel:
        path = self._models_path(tenant_id, model_kind)

        async with self._lock_for(path):
            raw_rows = await asyncio.to_thread(read_json_array, path, True)
            existing = next(
                (
                    r for r in _parse_models(raw_rows, path)
                    if r.scope_key == scope_key and r.model_kind == model_kind
                ),
                None
            )
            stored = StoredModel(
                id=existing.id if existing else str(uuid.uuid4()),
                scope_key=scope_key,
                model_kind=model_kind,
                tenant_id=tenant_id,
                model=model,
                computed_at=computed_at,
            )
            # Rows for other scopes are kept as stored
            rows = [
                r for r in raw_rows
                if not (
                    isinstance(r, dict)
                    and r.get("scope_key") == scope_key
                    and r.get("model_kind") == model_kind
                )
            ]
            rows.append(stored.model_dump(mode="json"))
            await asyncio.to_thread(write_json_atomic, path, rows)

        return stored

    async def read_model(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        model_kind: str
    ) -> Optional[StoredModel]:
        path = self._models_path(tenant_id, model_kind)
        for row in await self._read_models(path):
            if row.scope_key == scope_key and row.model_kind == model_kind:
                return row
        return None

    async def list_models(
        self,
        tenant_id: Optional[str],
        model_kind: str,
        scope_prefix: str,
        limit: int
    ) -> List[StoredModel]:
        path = self._models_path(tenant_id, model_kind)
        rows = [
            r for r in await self._read_models(path)
            if r.model_kind == model_kind and r.scope_key.startswith(scope_prefix)
        ]
        rows.sort(key=lambda r: r.computed_at, reverse=True)
        return rows[:limit]

    def _tenant_dirs(self) -> List[Path]:
        try:
            return sorted(p for p in self.root.iterdir() if p.is_dir())
        except FileNotFoundError:
            return []

    async def list_active_scopes(
        self,
        since: datetime,
        limit: int
    ) -> List[ScopeTarget]:
        cutoff = ensure_utc(since)
        targets: List[ScopeTarget] = []

        for tenant_dir in await asyncio.to_thread(self._tenant_dirs):
            latest_by_scope: Dict[str, datetime] = {}
            for record in await self._read_signals(tenant_dir / SIGNALS_FILE):
                latest = latest_by_scope.get(record.scope_key)
                if latest is None or record.created_at > latest:
                    latest_by_scope[record.scope_key] = record.created_at

            for scope_key, latest in latest_by_scope.items():
                if latest >= cutoff:
                    targets.append(ScopeTarget(scope_key=scope_key, tenant_id=tenant_dir.name, last_signal_at=latest))

        targets.sort(key=lambda t: t.last_signal_at, reverse=True)
        return targets[:limit]
