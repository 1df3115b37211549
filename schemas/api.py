"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID

from models.base import DataSource, SyncOutcome, SyncTrigger
from schemas.apl import APLEntryResponse
from schemas.ingestion import IngestionStats


# ============================================================================
# Health Check Schemas
# ============================================================================

class SyncSourceInfo(BaseModel):
    """Sync status of one source for the health check"""
    state: str
    data_source: DataSource
    sync_status: SyncOutcome
    last_sync_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    entries_count: int = 0
    consecutive_failures: int = 0
    file_hash: Optional[str] = None
    last_error: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


def overall_status(database_connected: bool, total: int, failed: int) -> str:
    """healthy, degraded (some sources failing) or unhealthy"""
    if not database_connected:
        return "unhealthy"
    if total == 0 or failed == 0:
        return "healthy"
    if failed < total:
        return "degraded"
    return "unhealthy"


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    sources: List[SyncSourceInfo] = Field(default_factory=list)
    total_sources: int = 0
    successful_sources: int = 0
    failed_sources: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-10-02T03:05:00Z",
                "database_connected": True,
                "total_sources": 4,
                "successful_sources": 4,
                "failed_sources": 0,
                "sources": [],
            }
        }


# ============================================================================
# Sync Schemas
# ============================================================================

class ScheduledSourceStatus(BaseModel):
    state: str
    data_source: str
    schedule: str
    next_run_at: Optional[datetime] = None
    running: bool = False
    sync_status: str = "pending"
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    consecutive_failures: int = 0
    entries_count: int = 0
    last_error: Optional[str] = None


class SyncTriggerResponse(BaseModel):
    state: str
    status: str
    stats: Optional[IngestionStats] = None


class SyncRunResponse(BaseModel):
    run_id: UUID
    state: str
    data_source: DataSource
    triggered_by: SyncTrigger
    status: SyncOutcome
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total_rows: int = 0
    skipped_rows: int = 0
    valid_entries: int = 0
    invalid_entries: int = 0
    duplicates: int = 0
    additions: int = 0
    updates: int = 0
    policy_counters: Optional[Dict[str, int]] = None
    file_hash: Optional[str] = None
    error_message: Optional[str] = None
    requested_by: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


# ============================================================================
# Lookup Schemas
# ============================================================================

class EligibilityResponse(BaseModel):
    state: str
    upc: str
    upc_display: str
    eligible: bool
    entries: List[APLEntryResponse] = Field(default_factory=list)
