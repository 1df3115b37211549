"""
Configured APL sources, built from settings
"""

from typing import List, Optional
import logging

from core.config import Settings
from ingestion.base import SourceAdapter
from ingestion.sources import florida, michigan, north_carolina, oregon

logger = logging.getLogger(__name__)

# Settings prefix -> source module
SOURCE_MODULES = {
    "MICHIGAN": michigan,
    "NORTH_CAROLINA": north_carolina,
    "FLORIDA": florida,
    "OREGON": oregon,
}


def build_sources(settings: Settings, only: Optional[List[str]] = None) -> List[SourceAdapter]:
    """
    Sources that have a URL or local path configured.

    Args:
        settings: Application settings
        only: Optional list of state codes to restrict to
    """
    wanted = {s.upper() for s in only} if only else None
    sources = []

    for prefix, module in SOURCE_MODULES.items():
        if wanted is not None and module.STATE not in wanted:
            continue

        url = getattr(settings, f"{prefix}_APL_URL", None)
        local_path = getattr(settings, f"{prefix}_APL_LOCAL_PATH", None)
        if not url and not local_path:
            logger.debug(f"No URL or path configured for {module.STATE}; skipping")
            continue

        expected = settings.EXPECTED_ENTRY_RANGES.get(module.STATE)
        sources.append(module.build_source(
            url=url,
            local_path=local_path,
            cron_override=getattr(settings, f"{prefix}_SYNC_CRON", None),
            expected_entry_range=tuple(expected) if expected else None,
        ))

    return sources
