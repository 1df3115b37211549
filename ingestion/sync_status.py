"""
Per-source sync status: change detection, health bookkeeping, run audit and
alert evaluation.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import SyncStatusError
from models.base import DataSource, SyncOutcome, SyncTrigger
from models.sync_run import SyncRun
from models.sync_status import SyncStatus
from schemas.ingestion import Alert, AlertSeverity, IngestionStats

logger = logging.getLogger(__name__)

NO_NEW_DATA_WARNING = "no new data: file hash unchanged since last sync"
MAX_ERROR_LENGTH = 2000

# (state, processor); processor None applies to every processor of the state
RangeKey = Tuple[str, Optional[str]]


def range_key(state: str, data_source) -> RangeKey:
    source = data_source.value if isinstance(data_source, DataSource) else str(data_source)
    return state.upper(), source.lower()


def parse_expected_ranges(raw: Dict[str, List[int]]) -> Dict[RangeKey, Tuple[int, int]]:
    """
    Settings keys are a state ("MI") or a state and processor ("MI:fis").
    Entries without exactly two bounds are ignored.
    """
    ranges = {}
    for key, bounds in raw.items():
        if len(bounds) != 2:
            logger.warning(f"Ignoring expected entry range for {key!r}: need [min, max]")
            continue
        state, _, source = key.partition(":")
        ranges[(state.strip().upper(), source.strip().lower() or None)] = (bounds[0], bounds[1])
    return ranges


class SyncStatusTracker:
    """
    Read and write SyncStatus rows.

    Responsibilities:
    - Compare the downloaded file hash with the last one
    - Record success/failure after every run (one row per source)
    - Append a SyncRun audit row
    - Decide which alerts a status warrants
    """

    def __init__(
        self,
        db_session: AsyncSession,
        failure_threshold: int = None,
        stale_days: int = None,
        expected_ranges: Optional[Dict[RangeKey, Tuple[int, int]]] = None
    ):
        self.db = db_session
        self.failure_threshold = failure_threshold or settings.ALERT_CONSECUTIVE_FAILURES
        self.stale_days = stale_days or settings.ALERT_STALE_DAYS
        if expected_ranges is None:
            expected_ranges = parse_expected_ranges(settings.EXPECTED_ENTRY_RANGES)
        self.expected_ranges = expected_ranges

    def expected_range(self, state: str, data_source) -> Optional[Tuple[int, int]]:
        """Range for this processor, falling back to one set for the whole state"""
        key = range_key(state, data_source)
        return self.expected_ranges.get(key) or self.expected_ranges.get((key[0], None))

    async def get_status(self, state: str, data_source: DataSource) -> Optional[SyncStatus]:
        try:
            result = await self.db.execute(
                select(SyncStatus).where(
                    SyncStatus.state == state,
                    SyncStatus.data_source == data_source,
                )
            )
        except SQLAlchemyError as e:
            raise SyncStatusError(
                "Failed to read sync status",
                context={"state": state, "data_source": data_source.value, "operation": "read"},
                original_exception=e
            )
        return result.scalar_one_or_none()

    async def get_or_create(self, state: str, data_source: DataSource) -> SyncStatus:
        status = await self.get_status(state, data_source)
        if status is None:
            now = datetime.utcnow()
            status = SyncStatus(
                state=state,
                data_source=data_source,
                sync_status=SyncOutcome.PENDING,
                entries_count=0,
                consecutive_failures=0,
                total_syncs=0,
                total_failures=0,
                created_at=now,
                updated_at=now,
            )
            self.db.add(status)
        return status

    async def list_statuses(self) -> List[SyncStatus]:
        result = await self.db.execute(select(SyncStatus).order_by(SyncStatus.state))
        return list(result.scalars().all())

    async def check_unchanged(self, stats: IngestionStats, data_source: DataSource) -> bool:
        """
        True when the file hash equals the stored one. Sets no_new_data and the
        warning on stats; this is never an error.
        """
        status = await self.get_status(stats.state, data_source)
        if status is None or not status.file_hash or status.file_hash != stats.file_hash:
            return False
        stats.no_new_data = True
        stats.add_warning(NO_NEW_DATA_WARNING)
        logger.info(f"{stats.state}: {NO_NEW_DATA_WARNING}")
        return True

    async def record_success(
        self,
        stats: IngestionStats,
        data_source: DataSource,
        next_sync_at: Optional[datetime] = None,
        skipped: bool = False
    ) -> SyncStatus:
        """
        Mark a successful (or partial) run. consecutive_failures resets;
        entries_count is the number of entries written unless the run was
        skipped because nothing changed.
        """
        now = datetime.utcnow()
        try:
            status = await self.get_or_create(stats.state, data_source)

            if status.file_hash != stats.file_hash:
                status.previous_file_hash = status.file_hash
            status.file_hash = stats.file_hash
            status.sync_status = SyncOutcome.PARTIAL if stats.invalid_entries else SyncOutcome.SUCCESS
            status.last_sync_at = now
            status.last_success_at = now
            if not skipped:
                status.entries_count = stats.entries_written
            status.consecutive_failures = 0
            status.last_error = None
            status.total_syncs = (status.total_syncs or 0) + 1
            if next_sync_at is not None:
                status.next_sync_at = next_sync_at
            status.updated_at = now

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise SyncStatusError(
                "Failed to record sync success",
                context={"state": stats.state, "data_source": data_source.value, "operation": "write"},
                original_exception=e
            )
        return status

    async def record_failure(
        self,
        state: str,
        data_source: DataSource,
        error_message: str,
        next_sync_at: Optional[datetime] = None
    ) -> SyncStatus:
        """Mark a failed run. Previously committed data and last_success_at are untouched."""
        now = datetime.utcnow()
        try:
            status = await self.get_or_create(state, data_source)
            status.sync_status = SyncOutcome.FAILURE
            status.last_sync_at = now
            status.last_failure_at = now
            status.last_error = error_message[:MAX_ERROR_LENGTH]
            status.consecutive_failures = (status.consecutive_failures or 0) + 1
            status.total_failures = (status.total_failures or 0) + 1
            status.total_syncs = (status.total_syncs or 0) + 1
            if next_sync_at is not None:
                status.next_sync_at = next_sync_at
            status.updated_at = now

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise SyncStatusError(
                "Failed to record sync failure",
                context={"state": state, "data_source": data_source.value, "operation": "write"},
                original_exception=e
            )

        logger.warning(
            f"{state} sync failed ({status.consecutive_failures} consecutive): {error_message}"
        )
        return status

    async def record_run(
        self,
        stats: IngestionStats,
        data_source: DataSource,
        outcome: SyncOutcome,
        triggered_by: SyncTrigger = SyncTrigger.SCHEDULER,
        error_message: Optional[str] = None
    ) -> SyncRun:
        """Append the audit row for a finished run"""
        if stats.finished_at is None:
            stats.finish()

        run = SyncRun(
            state=stats.state,
            data_source=data_source,
            triggered_by=triggered_by,
            status=outcome,
            started_at=stats.started_at,
            completed_at=stats.finished_at,
            duration_seconds=(stats.duration_ms or 0) / 1000.0,
            total_rows=stats.total_rows,
            skipped_rows=stats.skipped_rows,
            valid_entries=stats.valid_entries,
            invalid_entries=stats.invalid_entries,
            duplicates=stats.duplicates,
            additions=stats.additions,
            updates=stats.updates,
            policy_counters=stats.policy_counters(),
            file_hash=stats.file_hash,
            requested_by=stats.requested_by,
            reason=stats.reason,
            notes=stats.notes,
            error_message=error_message[:MAX_ERROR_LENGTH] if error_message else None,
            warnings=stats.warnings[:50],
        )
        try:
            self.db.add(run)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise SyncStatusError(
                "Failed to record sync run",
                context={"state": stats.state, "data_source": data_source.value, "operation": "write"},
                original_exception=e
            )
        return run

    def evaluate_alerts(self, status: SyncStatus, now: Optional[datetime] = None) -> List[Alert]:
        """
        Alerts for a status row:
        - consecutive failures at or above the threshold
        - no success within stale_days
        - entries_count outside the source's expected range
        """
        now = now or datetime.utcnow()
        alerts: List[Alert] = []
        source = status.data_source.value if status.data_source else ""

        failures = status.consecutive_failures or 0
        if failures >= self.failure_threshold:
            alerts.append(Alert(
                state=status.state,
                data_source=source,
                severity=AlertSeverity.CRITICAL,
                message=(
                    f"APL sync for {status.state} failed {failures} times in a row. "
                    f"Last error: {status.last_error or 'unknown'}"
                ),
            ))

        stale_before = now - timedelta(days=self.stale_days)
        reference = status.last_success_at or status.created_at
        if reference is not None and reference < stale_before:
            alerts.append(Alert(
                state=status.state,
                data_source=source,
                severity=AlertSeverity.WARNING,
                message=f"APL for {status.state} has not synced successfully in over {self.stale_days} days",
            ))

        expected = self.expected_range(status.state, source)
        if expected and status.sync_status in (SyncOutcome.SUCCESS, SyncOutcome.PARTIAL):
            low, high = expected
            if not low <= (status.entries_count or 0) <= high:
                alerts.append(Alert(
                    state=status.state,
                    data_source=source,
                    severity=AlertSeverity.WARNING,
                    message=(
                        f"APL for {status.state} has {status.entries_count} entries, "
                        f"expected between {low} and {high}"
                    ),
                ))

        return alerts
