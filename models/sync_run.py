from sqlalchemy import Column, BigInteger, Integer, String, Enum, DateTime, Float, Text, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, DataSource, SyncOutcome, SyncTrigger, JSONType


class SyncRun(Base):
    """
    Audit row for each sync execution.

    Purpose:
    - Audit trail of all runs, including failed ones
    - Run-over-run comparison of counters
    - Error tracking and debugging
    """
    __tablename__ = "apl_sync_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    # Source identification
    state = Column(String(2), nullable=False, index=True)
    data_source = Column(Enum(DataSource), nullable=False)
    triggered_by = Column(Enum(SyncTrigger), default=SyncTrigger.SCHEDULER, nullable=False)

    status = Column(Enum(SyncOutcome), default=SyncOutcome.RUNNING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    total_rows = Column(Integer, default=0)
    skipped_rows = Column(Integer, default=0)
    valid_entries = Column(Integer, default=0)
    invalid_entries = Column(Integer, default=0)
    duplicates = Column(Integer, default=0)
    additions = Column(Integer, default=0)
    updates = Column(Integer, default=0)
    policy_counters = Column(JSONType, nullable=True)  # rejected_artificial_dyes, organic_products, ...

    file_hash = Column(String(64), nullable=True)

    # On-demand runs
    requested_by = Column(String(100), nullable=True)
    reason = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)
    warnings = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_sync_run_state_started", "state", "started_at"),
    )
