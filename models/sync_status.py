from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from datetime import datetime
from models.base import Base, DataSource, SyncOutcome


class SyncStatus(Base):
    """
    Tracks sync state per (state, data source).

    Purpose:
    - Change detection via the hash of the last downloaded file
    - Health reporting (last success, consecutive failures)
    - Input for alerting

    Design:
    - One row per source, created on first run, never deleted
    """
    __tablename__ = "apl_sync_status"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    state = Column(String(2), nullable=False)
    data_source = Column(Enum(DataSource), nullable=False)

    # Run state
    sync_status = Column(Enum(SyncOutcome), default=SyncOutcome.PENDING, nullable=False)
    last_sync_at = Column(DateTime, nullable=True, index=True)
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)
    next_sync_at = Column(DateTime, nullable=True)

    # Content
    entries_count = Column(Integer, default=0, nullable=False)
    file_hash = Column(String(64), nullable=True)
    previous_file_hash = Column(String(64), nullable=True)

    # Failure tracking
    last_error = Column(Text, nullable=True)
    consecutive_failures = Column(Integer, default=0, nullable=False)
    total_syncs = Column(Integer, default=0, nullable=False)
    total_failures = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_sync_status_source", "state", "data_source", unique=True),
    )
