"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, JSON column type and shared enums
        (DataSource, SyncOutcome, SyncTrigger, ParticipantType, SizeUnit)
    apl_entry: Canonical approved-product entries
    sync_status: Per-source sync state used for change detection and health
    sync_run: Audit trail of individual sync runs

Usage:
    from models.apl_entry import APLEntry
    from models.sync_status import SyncStatus
    from models.base import DataSource, SyncOutcome

Relationships:
    - SyncStatus (state, data_source) -> SyncRun (one-to-many, by key)
    - APLEntry rows are keyed by (state, upc, effective_date)
"""

__all__ = [
    "Base",
    "DataSource",
    "SyncOutcome",
    "SyncTrigger",
    "ParticipantType",
    "SizeUnit",
    "APLEntry",
    "SyncStatus",
    "SyncRun",
]
