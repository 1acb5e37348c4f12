"""Batch job trigger routes for external cron."""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from pulse.api.dependencies import get_pulse_service
from pulse.core.config import settings
from pulse.services.pulse_service import PulseService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def verify_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    """Reject the call unless X-Cron-Secret matches the configured secret."""
    expected = settings.cron_secret
    if not expected or not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        logger.warning("Rejected batch job trigger with missing or invalid cron secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret"
        )


@router.post("/pulse/recompute", dependencies=[Depends(verify_cron_secret)])
async def run_pulse_batch(
    limit: Optional[int] = Query(default=None),
    service: PulseService = Depends(get_pulse_service)
):
    """Recompute the pulse model of every recently active scope."""
    result = await service.run_batch(limit)
    return {
        "ok": True,
        "due": result.due,
        "processed": result.processed,
        "failed": result.failed,
    }
