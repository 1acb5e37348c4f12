"""Health check endpoints for API and storage monitoring."""
import asyncio
import os
import logging

from fastapi import APIRouter
from sqlalchemy import text

from pulse.core.config import settings
from pulse.core.database import AsyncSessionLocal

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "town-pulse-api"}


@router.get("/health/storage")
async def check_storage_health():
    """
    Check that the configured storage backend is reachable.

    Database mode runs SELECT 1; local mode checks the data directory
    can be listed.
    """
    logger.debug(f"Starting storage health check ({settings.storage_mode})")

    try:
        if settings.storage_mode == "database":
            async with AsyncSessionLocal() as db:
                await db.execute(text("SELECT 1"))
        else:
            root = settings.local_data_dir
            await asyncio.to_thread(os.makedirs, root, exist_ok=True)
            await asyncio.to_thread(os.listdir, root)

        logger.debug("✓ Storage backend reachable")
        return {"status": "healthy", "storage_mode": settings.storage_mode}

    except Exception as e:
        logger.error(f"Storage health check failed: {e}", exc_info=True)
        return {
            "status": "unhealthy",
            "storage_mode": settings.storage_mode,
            "error": str(e),
            "error_type": type(e).__name__
        }
