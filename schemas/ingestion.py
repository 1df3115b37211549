"""
Pydantic schemas for per-run ingestion bookkeeping and alerts
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum

# Cap on stored messages; counters keep the real totals
MAX_STORED_MESSAGES = 200


class IngestionStats(BaseModel):
    """Counters and messages for one sync run. Owned by that run only."""
    state: str
    data_source: str

    total_rows: int = 0
    skipped_rows: int = 0
    valid_entries: int = 0
    invalid_entries: int = 0
    duplicates: int = 0
    additions: int = 0
    updates: int = 0

    # Policy counters
    rejected_artificial_dyes: int = 0
    contract_formula_changes: int = 0
    organic_products: int = 0
    local_products: int = 0

    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    file_hash: Optional[str] = None
    no_new_data: bool = False

    # Who asked for the run and why (manual and CLI triggers)
    requested_by: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_STORED_MESSAGES:
            self.errors.append(message)

    def add_warning(self, message: str) -> None:
        if len(self.warnings) < MAX_STORED_MESSAGES:
            self.warnings.append(message)

    def finish(self) -> None:
        self.finished_at = datetime.utcnow()
        self.duration_ms = int((self.finished_at - self.started_at).total_seconds() * 1000)

    @property
    def entries_written(self) -> int:
        return self.additions + self.updates

    def policy_counters(self) -> Dict[str, int]:
        return {
            "rejected_artificial_dyes": self.rejected_artificial_dyes,
            "contract_formula_changes": self.contract_formula_changes,
            "organic_products": self.organic_products,
            "local_products": self.local_products,
        }

    def summary(self) -> str:
        return (
            f"{self.state}: rows={self.total_rows} skipped={self.skipped_rows} "
            f"valid={self.valid_entries} invalid={self.invalid_entries} "
            f"duplicates={self.duplicates} added={self.additions} updated={self.updates}"
        )


class SyncRequest(BaseModel):
    """Context recorded with an on-demand sync"""
    reason: Optional[str] = Field(None, max_length=200)
    requested_by: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Alert(BaseModel):
    state: str
    data_source: str
    severity: AlertSeverity
    message: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
