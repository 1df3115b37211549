"""
Health check endpoint with database and per-source sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db
from ingestion.sync_status import SyncStatusTracker
from models.base import SyncOutcome
from schemas.api import HealthCheckResponse, SyncSourceInfo, overall_status
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Sync status for every source that has run at least once
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    sources = []
    successful_sources = 0
    failed_sources = 0

    if db_connected:
        try:
            for row in await SyncStatusTracker(db).list_statuses():
                if row.sync_status == SyncOutcome.FAILURE:
                    failed_sources += 1
                elif row.sync_status in (SyncOutcome.SUCCESS, SyncOutcome.PARTIAL):
                    successful_sources += 1
                sources.append(SyncSourceInfo.model_validate(row))
        except Exception as e:
            logger.error(f"Failed to fetch sync status: {str(e)}")

    return HealthCheckResponse(
        status=overall_status(db_connected, len(sources), failed_sources),
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        sources=sources,
        total_sources=len(sources),
        successful_sources=successful_sources,
        failed_sources=failed_sources
    )
