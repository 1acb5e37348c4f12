"""Per-brand post timing API routes."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from pulse.api.dependencies import get_tenant_id, get_timing_service
from pulse.schemas.timing import PostNowDecision, TimingModelRecord
from pulse.services.timing_service import TimingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/timing", tags=["timing"])


class RecomputeTimingRequest(BaseModel):
    """Request to rebuild a brand/platform timing model."""
    brand_id: str
    platform: str
    range_days: Optional[int] = None


@router.get("/model")
async def get_timing_model(
    brand_id: str = Query(..., min_length=1),
    platform: Optional[str] = Query(default=None),
    limit: int = Query(default=20),
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: TimingService = Depends(get_timing_service)
):
    """
    Timing model for one platform, or every cached model of the brand.

    With a platform the model is recomputed when missing or stale.
    Without one, only cached models are listed.
    """
    if platform is None:
        records = await service.list_models(tenant_id, brand_id, limit)
        return {"count": len(records), "models": records}

    record = await service.get_model(tenant_id, brand_id, platform)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No timing model for {brand_id}/{platform}"
        )
    return record


@router.post("/recompute", response_model=TimingModelRecord)
async def recompute_timing_model(
    request: RecomputeTimingRequest,
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: TimingService = Depends(get_timing_service)
):
    """Force a rebuild of the timing model for a brand/platform."""
    return await service.recompute(
        tenant_id,
        request.brand_id,
        request.platform,
        range_days=request.range_days,
    )


@router.get("/post-now", response_model=PostNowDecision)
async def post_now(
    brand_id: str = Query(..., min_length=1),
    platform: str = Query(..., min_length=1),
    tenant_id: Optional[str] = Depends(get_tenant_id),
    service: TimingService = Depends(get_timing_service)
):
    """Whether now is a good moment to post for this brand/platform."""
    return await service.should_post_now(tenant_id, brand_id, platform)
