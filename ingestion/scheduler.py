import logging
import asyncio
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from core.database import build_engine, build_session_maker
from core.exceptions import ETLException, NonRetryableError
from ingestion.alerts import AlertSink, build_alert_sink
from ingestion.base import SourceAdapter
from ingestion.runner import IngestionRunner
from ingestion.sync_status import SyncStatusTracker
from models.base import SyncTrigger
from schemas.ingestion import AlertSeverity, IngestionStats, SyncRequest

logger = logging.getLogger(__name__)

CADENCE_JOB_ID = "apl_cadence_refresh"


class SyncScheduler:
    """
    Cron-driven sync of every configured source.

    - One CronTrigger job per state; the cron comes from the source's override
      or its rollout calendar, re-checked daily by a cadence job
    - Runs for the same state are serialized; different states run concurrently,
      at most max_parallel at once when every source is synced together
    - Failed runs retry with exponential backoff, then alert and wait for the
      next tick
    """

    def __init__(
        self,
        sources: Optional[List[SourceAdapter]] = None,
        session_maker: Optional[async_sessionmaker] = None,
        alert_sink: Optional[AlertSink] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timezone: Optional[str] = None,
        max_parallel: Optional[int] = None,
        skip_unchanged: bool = False,
    ):
        self.timezone = timezone or settings.SYNC_TIMEZONE
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        if session_maker is None:
            self.engine = build_engine()
            session_maker = build_session_maker(self.engine)
        else:
            self.engine = None
        self.SessionLocal = session_maker

        if sources is None:
            from ingestion.sources.registry import build_sources
            sources = build_sources(settings)
        self.sources: Dict[str, SourceAdapter] = {s.state: s for s in sources}

        self.alert_sink = alert_sink or build_alert_sink()
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.retry_delay = settings.RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.max_parallel = max_parallel or settings.MAX_PARALLEL_SYNCS
        self.skip_unchanged = skip_unchanged

        self._locks: Dict[str, asyncio.Lock] = {}
        self._schedules: Dict[str, str] = {}
        self._last_results: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def job_id(state: str) -> str:
        return f"apl_sync_{state.lower()}"

    def _lock(self, state: str) -> asyncio.Lock:
        if state not in self._locks:
            self._locks[state] = asyncio.Lock()
        return self._locks[state]

    def _source(self, state: str) -> SourceAdapter:
        try:
            return self.sources[state.upper()]
        except KeyError:
            raise KeyError(f"No APL source configured for state {state!r}")

    def _trigger(self, cron: str) -> CronTrigger:
        return CronTrigger.from_crontab(cron, timezone=self.timezone)

    def next_run_time(self, state: str) -> Optional[datetime]:
        job = self.scheduler.get_job(self.job_id(state))
        if job is None:
            return None
        # Pending jobs (scheduler not started) have no next_run_time yet
        return getattr(job, "next_run_time", None)

    async def run_source_job(self, state: str) -> None:
        """Job entry point; failures are logged, the job waits for its next tick"""
        await self.run_with_retries(state, SyncTrigger.SCHEDULER, raise_on_failure=False)

    async def _run_once(
        self,
        source: SourceAdapter,
        triggered_by: SyncTrigger,
        request: Optional[SyncRequest] = None
    ) -> IngestionStats:
        async with self.SessionLocal() as session:
            runner = IngestionRunner(session, alert_sink=self.alert_sink, skip_unchanged=self.skip_unchanged)
            return await runner.run(
                source,
                triggered_by=triggered_by,
                next_sync_at=self.next_run_time(source.state),
                request=request,
            )

    async def run_with_retries(
        self,
        state: str,
        triggered_by: SyncTrigger = SyncTrigger.SCHEDULER,
        raise_on_failure: bool = True,
        request: Optional[SyncRequest] = None
    ) -> Optional[IngestionStats]:
        source = self._source(state)
        last_error: Optional[ETLException] = None
        attempts = 0

        async with self._lock(source.state):
            for attempt in range(self.max_retries):
                attempts = attempt + 1
                try:
                    stats = await self._run_once(source, triggered_by, request=request)
                    self._last_results[source.state] = {
                        "last_run_at": datetime.utcnow(),
                        "last_outcome": "success",
                        "last_error": None,
                        "attempts": attempts,
                    }
                    return stats

                except NonRetryableError as e:
                    last_error = e
                    logger.error(f"Sync for {source.state} failed permanently: {e.message}")
                    break

                except ETLException as e:
                    last_error = e
                    if attempt < self.max_retries - 1:
                        delay = self.retry_delay * (2 ** attempt)
                        logger.warning(
                            f"Sync for {source.state} failed ({e.message}). "
                            f"Retrying in {delay} seconds (attempt {attempts}/{self.max_retries})"
                        )
                        await asyncio.sleep(delay)

        self._last_results[source.state] = {
            "last_run_at": datetime.utcnow(),
            "last_outcome": "failure",
            "last_error": last_error.message if last_error else None,
            "attempts": attempts,
        }
        await self.alert_sink.send(
            f"APL sync for {source.state} gave up after {attempts} attempt(s): "
            f"{last_error.message if last_error else 'unknown error'}",
            AlertSeverity.CRITICAL,
        )
        if raise_on_failure and last_error is not None:
            raise last_error
        return None

    async def run_now(self, state: str, request: Optional[SyncRequest] = None) -> Optional[IngestionStats]:
        """Manual trigger for one state"""
        reason = request.reason if request else None
        logger.info(f"Manual sync requested for {state}" + (f": {reason}" if reason else ""))
        return await self.run_with_retries(state, SyncTrigger.MANUAL, raise_on_failure=True, request=request)

    async def run_all(
        self,
        triggered_by: SyncTrigger = SyncTrigger.MANUAL,
        request: Optional[SyncRequest] = None
    ) -> Dict[str, Optional[IngestionStats]]:
        """
        Sync every state, highest priority first, with at most max_parallel
        runs at once. One state's failure doesn't stop the others.
        """
        ordered = sorted(self.sources.values(), key=lambda s: (s.priority, s.state))
        slots = asyncio.Semaphore(self.max_parallel)

        async def run_in_slot(source: SourceAdapter) -> Optional[IngestionStats]:
            async with slots:
                return await self.run_with_retries(
                    source.state, triggered_by, raise_on_failure=False, request=request
                )

        results = await asyncio.gather(*(run_in_slot(source) for source in ordered))
        return {source.state: stats for source, stats in zip(ordered, results)}

    def last_result(self, state: str) -> Dict[str, Any]:
        """Outcome of the latest attempt in this process (empty before any run)"""
        return self._last_results.get(state.upper(), {})

    def is_running(self, state: str) -> bool:
        lock = self._locks.get(state.upper())
        return lock is not None and lock.locked()

    async def status(self) -> List[Dict[str, Any]]:
        """Health view: schedule, next run and last outcome per source"""
        async with self.SessionLocal() as session:
            tracker = SyncStatusTracker(session)
            rows = {(s.state, s.data_source): s for s in await tracker.list_statuses()}

        report = []
        for state, source in self.sources.items():
            row = rows.get((state, source.data_source))
            last = self._last_results.get(state, {})
            report.append({
                "state": state,
                "data_source": source.data_source.value,
                "schedule": self._schedules.get(state) or source.cron_expression(),
                "next_run_at": self.next_run_time(state),
                "running": self.is_running(state),
                "last_run_at": row.last_sync_at if row else last.get("last_run_at"),
                "last_success_at": row.last_success_at if row else None,
                "last_failure_at": row.last_failure_at if row else None,
                "sync_status": row.sync_status.value if row else "pending",
                "consecutive_failures": row.consecutive_failures if row else 0,
                "entries_count": row.entries_count if row else 0,
                "last_error": row.last_error if row else last.get("last_error"),
            })
        return report

    def schedule_sources(self, as_of: Optional[date] = None) -> None:
        for state, source in self.sources.items():
            cron = source.cron_expression(as_of)
            self.scheduler.add_job(
                self.run_source_job,
                trigger=self._trigger(cron),
                args=[state],
                id=self.job_id(state),
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=3600,
            )
            self._schedules[state] = cron
            logger.info(f"Scheduled {source.source_name} with '{cron}' ({self.timezone})")

    def refresh_cadence(self, as_of: Optional[date] = None) -> List[str]:
        """Reschedule sources whose cadence changed (rollout windows opening/closing)"""
        changed = []
        for state, source in self.sources.items():
            cron = source.cron_expression(as_of)
            if cron == self._schedules.get(state):
                continue
            if self.scheduler.get_job(self.job_id(state)) is not None:
                self.scheduler.reschedule_job(self.job_id(state), trigger=self._trigger(cron))
            self._schedules[state] = cron
            changed.append(state)
            logger.info(f"Cadence for {state} changed to '{cron}'")
        return changed

    def start(self):
        """Start the scheduler"""
        self.schedule_sources()
        self.scheduler.add_job(
            self.refresh_cadence,
            trigger=CronTrigger(hour=0, minute=15, timezone=self.timezone),
            id=CADENCE_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"APL sync scheduler started for {len(self.sources)} sources")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("APL sync scheduler stopped")
