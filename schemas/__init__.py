"""
Pydantic schemas for data validation and serialization.

Schemas:
    apl: Canonical APL entry and its restriction sub-models, UPC variants
    ingestion: Per-run stats, validation results and alerts
    api: API endpoint request/response schemas

Usage:
    from schemas.apl import APLEntryCreate, SizeRestriction
    from schemas.ingestion import IngestionStats

Example:
    entry = APLEntryCreate(
        state="MI",
        upc="041220576081",
        benefit_category="Cereal",
        effective_date=date(2025, 1, 1),
        data_source="fis",
    )
    assert entry.entry_id == "apl_mi_041220576081_20250101"

Validation:
    Entry models are permissive on purpose; semantic checks live in
    ingestion.transformers.validator so a bad row is reported, not raised.
"""

__all__ = [
    "APLEntryCreate",
    "APLEntryResponse",
    "SizeRestriction",
    "BrandRestriction",
    "AdditionalRestrictions",
    "PolicyFlag",
    "UPCVariants",
    "IngestionStats",
    "SyncRequest",
    "ValidationResult",
    "Alert",
    "HealthCheckResponse",
]
