# ============================================================================
# File: ingestion/runner.py
# Description: Sync run orchestrator for one APL source
# ============================================================================
"""
Ingestion Runner - Orchestrates one sync run of one state's APL.

Pipeline phases:
1. Extract - download/read and parse the file, hash the raw bytes
2. Change detection - compare the hash with the stored one
3. Transform - field map, UPC normalization, policy rules, validation
4. Load - natural-key upsert inside one transaction
5. Status - sync status row, audit row, alerts

Row-level problems are counted and the run continues; fatal problems
(download, parse, database, timeout) roll back the run, are recorded as a
failed sync and propagate to the caller.
"""

from collections import Counter
from datetime import date, datetime
from typing import List, Optional
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import (
    ETLException,
    ExtractionError,
    RowTransformError,
    RunTimeoutError,
    SyncStatusError,
)
from ingestion.alerts import AlertSink, build_alert_sink
from ingestion.base import SourceAdapter
from ingestion.loaders.apl_loader import APLLoader
from ingestion.policies.rules import apply_policies
from ingestion.sync_status import SyncStatusTracker, range_key
from ingestion.transformers.row_transformer import RowTransformer
from ingestion.transformers.validator import EntryValidator
from models.base import SyncOutcome, SyncTrigger
from models.sync_status import SyncStatus
from schemas.apl import APLEntryCreate
from schemas.ingestion import IngestionStats, SyncRequest

logger = logging.getLogger(__name__)


class IngestionRunner:
    """
    Run the full pipeline for a source.

    Responsibilities:
    - Orchestrate extract -> transform -> validate -> load
    - Keep the run atomic (one transaction for all upserts)
    - Record sync status and the audit row for success and failure
    - Send alerts the resulting status warrants
    """

    def __init__(
        self,
        db_session: AsyncSession,
        alert_sink: Optional[AlertSink] = None,
        run_timeout: Optional[float] = None,
        skip_unchanged: bool = False,
        as_of: Optional[date] = None,
        tracker: Optional[SyncStatusTracker] = None
    ):
        self.db = db_session
        self.alert_sink = alert_sink or build_alert_sink()
        self.run_timeout = run_timeout or settings.RUN_TIMEOUT_SECONDS
        self.skip_unchanged = skip_unchanged
        self.as_of = as_of
        self.tracker = tracker or SyncStatusTracker(db_session)
        self.validator = EntryValidator()

    async def run(
        self,
        source: SourceAdapter,
        triggered_by: SyncTrigger = SyncTrigger.SCHEDULER,
        next_sync_at: Optional[datetime] = None,
        request: Optional[SyncRequest] = None
    ) -> IngestionStats:
        """
        Run one sync.

        Args:
            source: The state feed to sync
            triggered_by: Scheduler, manual trigger or CLI
            next_sync_at: Next scheduled run, stored on the status row
            request: Reason and requester of an on-demand run (audit only)

        Returns:
            IngestionStats of the finished run

        Raises:
            ETLException (or subclass): the run failed and was rolled back
        """
        stats = IngestionStats(state=source.state, data_source=source.data_source.value)
        if request is not None:
            stats.requested_by = request.requested_by
            stats.reason = request.reason
            stats.notes = request.notes
        if source.config.expected_entry_range:
            self.tracker.expected_ranges.setdefault(
                range_key(source.state, source.data_source), tuple(source.config.expected_entry_range)
            )
        logger.info(f"Starting sync for {source.source_name} ({triggered_by.value})")

        try:
            await asyncio.wait_for(
                self._run_pipeline(source, stats, triggered_by, next_sync_at),
                timeout=self.run_timeout
            )

        except asyncio.TimeoutError as e:
            error = RunTimeoutError(
                f"Sync exceeded {self.run_timeout}s",
                context={"state": source.state, "source_name": source.source_name},
                original_exception=e
            )
            await self._fail(source, stats, error, triggered_by, next_sync_at)
            raise error

        except ETLException as e:
            logger.error(
                f"Sync failed for {source.source_name}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await self._fail(source, stats, e, triggered_by, next_sync_at)
            raise

        except Exception as e:
            logger.exception(f"Unexpected error syncing {source.source_name}")
            error = ETLException(
                "Unexpected error in ingestion pipeline",
                context={
                    "state": source.state,
                    "source_name": source.source_name,
                    "total_rows": stats.total_rows,
                },
                original_exception=e
            )
            await self._fail(source, stats, error, triggered_by, next_sync_at)
            raise error

        return stats

    async def _run_pipeline(
        self,
        source: SourceAdapter,
        stats: IngestionStats,
        triggered_by: SyncTrigger,
        next_sync_at: Optional[datetime]
    ) -> None:
        # --------------------------------------------------
        # PHASE 1: EXTRACTION
        # --------------------------------------------------
        try:
            extract = await source.extract()
        except ETLException:
            raise
        except Exception as e:
            raise ExtractionError(
                "Unexpected error during extraction",
                context={"state": source.state, "source_name": source.source_name},
                original_exception=e
            )

        stats.file_hash = extract.file_hash
        stats.total_rows = extract.row_count

        # --------------------------------------------------
        # PHASE 2: CHANGE DETECTION
        # --------------------------------------------------
        unchanged = await self.tracker.check_unchanged(stats, source.data_source)
        if unchanged and self.skip_unchanged:
            stats.finish()
            status = await self.tracker.record_success(
                stats, source.data_source, next_sync_at=next_sync_at, skipped=True
            )
            await self.tracker.record_run(stats, source.data_source, status.sync_status, triggered_by)
            await self._send_alerts(status)
            logger.info(f"Skipped {source.source_name}: file unchanged")
            return

        # --------------------------------------------------
        # PHASE 3: TRANSFORM, POLICY, VALIDATE
        # --------------------------------------------------
        entries = self.transform_rows(source, extract.rows, stats)
        logger.info(
            f"Transformed {source.source_name}: {len(entries)} valid, "
            f"{stats.invalid_entries} invalid, {stats.skipped_rows} skipped"
        )

        # --------------------------------------------------
        # PHASE 4: LOAD (single transaction)
        # --------------------------------------------------
        loader = APLLoader(self.db)
        await loader.load(entries, stats)

        # --------------------------------------------------
        # PHASE 5: STATUS, AUDIT, ALERTS
        # --------------------------------------------------
        stats.finish()
        status = await self.tracker.record_success(stats, source.data_source, next_sync_at=next_sync_at)
        await self.tracker.record_run(stats, source.data_source, status.sync_status, triggered_by)
        await self._send_alerts(status)

        logger.info(f"Sync completed: {stats.summary()} in {stats.duration_ms}ms")

    def transform_rows(
        self,
        source: SourceAdapter,
        rows: List[dict],
        stats: IngestionStats
    ) -> List[APLEntryCreate]:
        """Rows -> sanitized, validated entries. Counters land on stats."""
        as_of = self.as_of or date.today()
        transformer = RowTransformer(
            state=source.state,
            data_source=source.data_source.value,
            field_map=source.field_map,
            source_hash=stats.file_hash,
            today=as_of,
        )

        entries: List[APLEntryCreate] = []
        warning_counts: Counter = Counter()

        for row_number, row in enumerate(rows, start=1):
            try:
                entry = transformer.transform(row, row_number, stats)
            except RowTransformError as e:
                stats.invalid_entries += 1
                stats.add_error(f"Row {row_number}: {e.message}")
                continue

            if entry is None:
                continue

            entry = apply_policies(source.policies, entry, row, stats, as_of)
            if entry is None:
                continue

            result = self.validator.validate(entry)
            warning_counts.update(result.warnings)
            if not result.valid:
                stats.invalid_entries += 1
                stats.add_error(f"Row {row_number} ({entry.upc}): {'; '.join(result.errors)}")
                continue

            entries.append(self.validator.sanitize(entry))
            stats.valid_entries += 1

        for message, count in warning_counts.most_common():
            stats.add_warning(f"{count} entries: {message}")

        return entries

    async def _fail(
        self,
        source: SourceAdapter,
        stats: IngestionStats,
        error: ETLException,
        triggered_by: SyncTrigger,
        next_sync_at: Optional[datetime]
    ) -> None:
        """Roll back the run and record it as a failed sync"""
        await self.db.rollback()
        stats.finish()
        stats.add_error(error.message)

        try:
            status = await self.tracker.record_failure(
                source.state, source.data_source, str(error), next_sync_at=next_sync_at
            )
            await self.tracker.record_run(
                stats, source.data_source, SyncOutcome.FAILURE, triggered_by, error_message=str(error)
            )
        except SyncStatusError as status_error:
            logger.error(f"Could not record failed sync for {source.source_name}: {status_error}")
            return

        await self._send_alerts(status)

    async def _send_alerts(self, status: SyncStatus) -> None:
        for alert in self.tracker.evaluate_alerts(status):
            await self.alert_sink.send(alert.message, alert.severity)
