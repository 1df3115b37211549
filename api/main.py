"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, sync, apl
from core.config import settings
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import SyncScheduler

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="WIC APL Ingestion API",
    description="Ingestion, sync status and eligibility lookup for state WIC Approved Product Lists",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

app.state.scheduler = SyncScheduler()

app.include_router(health.router)
app.include_router(sync.router)
app.include_router(apl.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting WIC APL Ingestion API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        app.state.scheduler.start()
    else:
        logger.info("Scheduler disabled; syncs run only on demand")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down WIC APL Ingestion API")
    app.state.scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "WIC APL Ingestion API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "sync_status": "/sync/status",
            "sync_runs": "/sync/runs",
            "run_now": "/sync/{state}",
            "lookup": "/apl/{state}/{upc}"
        }
    }
