"""Town pulse API routes."""
import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from pulse.api.dependencies import get_pulse_service, get_tenant_id
from pulse.schemas.model import PulseModelRecord
from pulse.schemas.signal import Category
from pulse.services.producers import record_for_brand, signals_for_daily_outcome
from pulse.services.pulse_service import PulseService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pulse", tags=["pulse"])


class RecordSignalsRequest(BaseModel):
    """Batch of signals for one scope and category."""
    category: Category
    signals: List[dict] = Field(default_factory=list)


class RecordSignalsResponse(BaseModel):
    written: int


class DailyCheckinRequest(BaseModel):
    """End-of-day outcome reported by a brand in the town."""
    brand_type: str = ""
    outcome: Literal["slow", "okay", "busy"]
    occurred_at: Optional[datetime] = None


class ActiveScopeResponse(BaseModel):
    scope_key: str
    tenant_id: Optional[str]
    last_signal_at: str


@router.get("/active", response_model=List[ActiveScopeResponse])
async def list_active_scopes(
    limit: int = Query(default=20),
    service: PulseService = Depends(get_pulse_service)
):
    """Scopes with recent signals, most recently active first."""
    targets = await service.list_active_scopes(limit)
    return [
        {
            "scope_key": t.scope_key,
            "tenant_id": t.tenant_id,
            "last_signal_at": t.last_signal_at.isoformat(),
        }
        for t in targets
    ]


@router.post("/{scope_key}/signals", response_model=RecordSignalsResponse, status_code=status.HTTP_201_CREATED)
async def record_signals(
    scope_key: str,
    request: RecordSignalsRequest,
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: PulseService = Depends(get_pulse_service)
):
    """
    Append signals for a scope.

    Items that fail validation are skipped; the response reports how many
    were written.
    """
    written = await service.record_signals(
        scope_key,
        request.category,
        request.signals,
        tenant_id=tenant_id,
    )
    return {"written": written}


@router.post("/{scope_key}/checkins", response_model=RecordSignalsResponse, status_code=status.HTTP_201_CREATED)
async def record_daily_checkin(
    scope_key: str,
    request: DailyCheckinRequest,
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: PulseService = Depends(get_pulse_service)
):
    """Turn a brand's daily check-in into busy/slow signals for its town."""
    written = await record_for_brand(
        service,
        scope_key,
        request.brand_type,
        signals_for_daily_outcome(request.outcome, request.occurred_at),
        tenant_id=tenant_id,
    )
    return {"written": written}


@router.get("/{scope_key}/model", response_model=PulseModelRecord)
async def get_model(
    scope_key: str,
    recompute_if_stale: bool = Query(default=True),
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: PulseService = Depends(get_pulse_service)
):
    """Cached pulse model for a scope, rebuilt when stale unless told otherwise."""
    record = await service.get_model(scope_key, tenant_id, recompute_if_stale=recompute_if_stale)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pulse model for {scope_key}"
        )
    return record


@router.post("/{scope_key}/recompute", response_model=PulseModelRecord)
async def recompute_model(
    scope_key: str,
    range_days: Optional[int] = Query(default=None),
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: PulseService = Depends(get_pulse_service)
):
    """Force a rebuild of the pulse model for a scope."""
    return await service.recompute(scope_key, tenant_id, range_days=range_days)
