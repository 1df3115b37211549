"""
Command-line sync: same retries, ordering and audit trail as the scheduler
"""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from core.exceptions import NetworkError
from ingestion.sources import florida, michigan
from models.base import SyncOutcome, SyncTrigger
from models.sync_run import SyncRun
from schemas.ingestion import AlertSeverity, SyncRequest
from scripts.run_sync import build_request, parse_args, run_sync


async def all_runs(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(SyncRun).order_by(SyncRun.id))
        return result.scalars().all()


@pytest.mark.asyncio
async def test_failed_source_is_counted(session_factory, alert_sink, write_apl_file, michigan_rows, tmp_path):
    sources = [
        florida.build_source(local_path=str(tmp_path / "missing_fl.xlsx")),
        michigan.build_source(local_path=write_apl_file(michigan_rows, name="mi.csv")),
    ]

    failures = await run_sync(
        sources,
        request=SyncRequest(reason="policy_change", requested_by="ops"),
        session_maker=session_factory,
        alert_sink=alert_sink,
        max_retries=3,
        retry_delay=0,
        timezone="UTC",
    )

    assert failures == 1
    runs = await all_runs(session_factory)
    assert {(r.state, r.status) for r in runs} == {("MI", SyncOutcome.SUCCESS), ("FL", SyncOutcome.FAILURE)}
    assert all(r.triggered_by == SyncTrigger.CLI for r in runs)
    assert all(r.reason == "policy_change" and r.requested_by == "ops" for r in runs)
    assert AlertSeverity.CRITICAL in alert_sink.severities()


@pytest.mark.asyncio
async def test_transient_failure_is_retried(session_factory, alert_sink, write_apl_file, michigan_rows):
    path = write_apl_file(michigan_rows, name="mi.csv")
    source = michigan.build_source(local_path=path)
    source.fetch_bytes = AsyncMock(side_effect=[NetworkError("HTTP 503"), Path(path).read_bytes()])

    failures = await run_sync(
        [source],
        session_maker=session_factory,
        alert_sink=alert_sink,
        max_retries=3,
        retry_delay=0,
        timezone="UTC",
    )

    assert failures == 0
    assert source.fetch_bytes.await_count == 2
    runs = await all_runs(session_factory)
    assert [r.status for r in runs] == [SyncOutcome.FAILURE, SyncOutcome.SUCCESS]


def test_request_from_arguments():
    args = parse_args(["--state", "FL", "--reason", "formula_shortage", "--requested-by", "ops"])
    request = build_request(args)

    assert request.reason == "formula_shortage"
    assert request.requested_by == "ops"
    assert request.notes is None
    assert build_request(parse_args(["--state", "FL"])) is None
