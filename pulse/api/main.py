"""FastAPI application exposing town pulse and timing models."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pulse.core.config import settings
from pulse.core.database import init_db
from pulse.core.redis import close_redis
from pulse.storage import MissingTenantError
import logging
import time
import sys

# Import routers
from pulse.api.routes import health, pulse as pulse_router, timing, jobs

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Town Pulse API", version="1.0.0")


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Application starting up...")
    logger.info(f"Storage mode: {settings.storage_mode}")

    if settings.storage_mode == "database":
        await init_db()
    else:
        logger.info(f"Local data directory: {settings.local_data_dir}")

    if settings.recompute_lock_enabled:
        logger.info(f"Recompute lock enabled ({settings.recompute_lock_seconds}s TTL)")

    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Release shared connections."""
    if settings.recompute_lock_enabled:
        await close_redis()
    logger.info("Application shut down")


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests and responses."""
    start_time = time.time()

    logger.info(f"→ {request.method} {request.url.path}")
    logger.debug(f"  Query params: {dict(request.query_params)}")

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(f"← {request.method} {request.url.path} - Status: {response.status_code} - Time: {process_time:.3f}s")

        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"← {request.method} {request.url.path} - ERROR after {process_time:.3f}s: {str(e)}")
        raise


@app.exception_handler(MissingTenantError)
async def missing_tenant_handler(request: Request, exc: MissingTenantError):
    """A tenant-scoped backend was called without X-Tenant-Id."""
    logger.warning(f"Missing tenant for {request.method} {request.url.path}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Invalid arguments surface as 400."""
    logger.warning(f"Invalid request to {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Add global exception handler to ensure CORS headers are sent even on errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and ensure CORS headers are sent."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error": str(exc) if settings.log_level == "DEBUG" else "Internal server error"
        },
        headers={
            "Access-Control-Allow-Origin": request.headers.get("origin", "*"),
            "Access-Control-Allow-Credentials": "true",
        }
    )

# Configure CORS
logger.info(f"Configuring CORS with origins: {settings.cors_origins_list}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(health.router)
app.include_router(pulse_router.router)
app.include_router(timing.router)
app.include_router(jobs.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.backend_port)
