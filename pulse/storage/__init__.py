"""Abstract storage contract shared by the local-file and database backends."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from pulse.schemas.model import StoredModel
from pulse.schemas.signal import SignalRecord


class PulseStorageError(ValueError):
    """Base class for storage configuration errors."""
    pass


class MissingTenantError(PulseStorageError):
    """Raised when a tenant-scoped backend is called without a tenant id."""
    pass


@dataclass(frozen=True)
class ScopeTarget:
    """A scope that received signals recently, with the tenant that owns it."""
    scope_key: str
    tenant_id: Optional[str]
    last_signal_at: datetime


class PulseStorage(ABC):
    """
    Persistence for signal records and cached models.

    Signal records are append-only: there is deliberately no update or
    delete operation. Models are upserted one row per (scope, model kind).
    """

    @abstractmethod
    async def insert_signals(
        self,
        tenant_id: Optional[str],
        records: List[SignalRecord]
    ) -> int:
        """
        Append signal records.

        Returns:
            Number of records written
        """
        pass

    @abstractmethod
    async def query_signals(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        since: datetime
    ) -> List[SignalRecord]:
        """Signals for a scope created at or after `since`, newest first."""
        pass

    @abstractmethod
    async def upsert_model(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        model_kind: str,
        model: Dict[str, Any],
        computed_at: datetime
    ) -> StoredModel:
        """Insert or overwrite the single cached model for a scope."""
        pass

    @abstractmethod
    async def read_model(
        self,
        tenant_id: Optional[str],
        scope_key: str,
        model_kind: str
    ) -> Optional[StoredModel]:
        """Read the cached model for a scope, if any."""
        pass

    @abstractmethod
    async def list_models(
        self,
        tenant_id: Optional[str],
        model_kind: str,
        scope_prefix: str,
        limit: int
    ) -> List[StoredModel]:
        """Cached models whose scope key starts with `scope_prefix`, newest first."""
        pass

    @abstractmethod
    async def list_active_scopes(
        self,
        since: datetime,
        limit: int
    ) -> List[ScopeTarget]:
        """Scopes with signals at or after `since`, most recently active first."""
        pass


__all__ = [
    "PulseStorage",
    "PulseStorageError",
    "MissingTenantError",
    "ScopeTarget",
]
