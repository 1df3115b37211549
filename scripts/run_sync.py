"""
Run APL syncs once from the command line.

    python scripts/run_sync.py                 # every configured state
    python scripts/run_sync.py --state FL      # one state
    python scripts/run_sync.py --state MI --file ./mi_apl.xlsx
    python scripts/run_sync.py --state FL --reason policy_change --requested-by ops
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from ingestion.base import SourceAdapter
from ingestion.scheduler import SyncScheduler
from ingestion.sources.registry import SOURCE_MODULES, build_sources
from models.base import SyncTrigger
from schemas.ingestion import SyncRequest

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run WIC APL ingestion once")
    parser.add_argument("--state", action="append", help="State code to sync (repeatable)")
    parser.add_argument("--file", help="Local APL file to load instead of downloading (requires one --state)")
    parser.add_argument("--skip-unchanged", action="store_true", help="Skip processing when the file hash is unchanged")
    parser.add_argument("--reason", help="Why this run was requested (stored on the run record)")
    parser.add_argument("--requested-by", help="Who requested this run")
    parser.add_argument("--notes", help="Free-form notes stored on the run record")
    return parser.parse_args(argv)


def build_request(args):
    if not (args.reason or args.requested_by or args.notes):
        return None
    return SyncRequest(reason=args.reason, requested_by=args.requested_by, notes=args.notes)


def select_sources(states, local_file=None):
    if local_file:
        if not states or len(states) != 1:
            raise SystemExit("--file requires exactly one --state")
        state = states[0].upper()
        module = next((m for m in SOURCE_MODULES.values() if m.STATE == state), None)
        if module is None:
            raise SystemExit(f"Unknown state {state}")
        source: SourceAdapter = module.build_source(local_path=local_file)
        return [source]

    sources = build_sources(settings, only=states)
    if not sources:
        raise SystemExit("No APL sources configured")
    return sources


async def run_sync(sources, skip_unchanged: bool = False, request=None, **scheduler_options) -> int:
    """
    Sync the given sources once, with the scheduler's retries, priority order
    and parallelism; returns the number of sources that still failed.

    scheduler_options go straight to SyncScheduler (session_maker, alert_sink,
    max_retries, retry_delay, max_parallel).
    """
    scheduler = SyncScheduler(sources=sources, skip_unchanged=skip_unchanged, **scheduler_options)
    failures = 0

    try:
        results = await scheduler.run_all(SyncTrigger.CLI, request=request)
        for state, stats in results.items():
            source_name = scheduler.sources[state].source_name
            if stats is None:
                failures += 1
                logger.error(f"{source_name} failed: {scheduler.last_result(state).get('last_error')}")
                continue
            logger.info(f"{source_name}: {stats.summary()}")
            for warning in stats.warnings[:10]:
                logger.info(f"  warning: {warning}")
    finally:
        # Only an engine the scheduler built for itself
        if scheduler.engine is not None:
            await scheduler.engine.dispose()

    return failures


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    selected = select_sources(args.state, args.file)
    failed = asyncio.run(run_sync(selected, args.skip_unchanged, request=build_request(args)))
    sys.exit(1 if failed else 0)
