"""
APL ingestion pipeline.

Modules:
    base: Source adapter base class and declarative source configuration
    upc: UPC normalization (UPC-A, UPC-E, EAN-13, GTIN-14)
    runner: Orchestrates one sync run of one source
    sync_status: Change detection, per-source status, run audit, alert rules
    alerts: Alert sinks (log, webhook)
    scheduler: APScheduler integration with per-source cron cadence

Subpackages:
    extractors: Download and parse state APL files
    transformers: Field maps, row transformer, validator
    policies: State policy rules and date-driven cadence/contract helpers
    loaders: Natural-key repository and transactional loader
    sources: Configured state feeds (MI, NC, FL, OR)

Architecture:
    Scheduler -> Source Adapter -> Row Transformer -> Policy Rules
    -> Validator -> Loader -> Sync Status -> Alerts

    Row-level problems are counted and skipped. Download, parse and database
    failures roll back the whole run and are recorded as a failed sync.

Usage:
    from ingestion.sources.florida import build_source
    from ingestion.runner import IngestionRunner

Example:
    source = build_source(local_path="florida_apl.xlsx")
    runner = IngestionRunner(session)
    stats = await runner.run(source)

    print(f"Added {stats.additions}, updated {stats.updates}")
"""

__all__ = [
    "SourceAdapter",
    "SourceConfig",
    "APLFileSource",
    "IngestionRunner",
    "SyncScheduler",
    "SyncStatusTracker",
    "normalize_upc",
]
