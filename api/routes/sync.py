"""
Sync control endpoints: schedule status, manual trigger, run history
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_scheduler
from core.exceptions import ETLException, NonRetryableError
from ingestion.scheduler import SyncScheduler
from models.sync_run import SyncRun
from schemas.api import ScheduledSourceStatus, SyncRunResponse, SyncTriggerResponse
from schemas.ingestion import SyncRequest
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"])


@router.get("/status", response_model=List[ScheduledSourceStatus])
async def sync_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Schedule, next run and last outcome for every configured source"""
    return await scheduler.status()


@router.post("/{state}", response_model=SyncTriggerResponse)
async def trigger_sync(
    state: str,
    sync_request: Optional[SyncRequest] = None,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Run a sync for one state now and wait for it to finish; the optional body is kept on the run record"""
    state = state.upper()
    if state not in scheduler.sources:
        raise HTTPException(status_code=404, detail=f"No APL source configured for {state}")

    try:
        stats = await scheduler.run_now(state, request=sync_request)
    except NonRetryableError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    except ETLException as e:
        raise HTTPException(status_code=502, detail=e.to_dict())

    return SyncTriggerResponse(
        state=state,
        status="partial" if stats and stats.invalid_entries else "success",
        stats=stats,
    )


@router.get("/runs", response_model=List[SyncRunResponse])
async def sync_runs(
    state: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Most recent sync runs, newest first"""
    stmt = select(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit)
    if state:
        stmt = stmt.where(SyncRun.state == state.upper())
    result = await db.execute(stmt)
    return [SyncRunResponse.model_validate(run) for run in result.scalars().all()]
