"""
Logging configuration for the API, the scheduler and the CLI scripts
"""

import logging
import sys
from typing import Dict, Optional

from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every query or request at INFO
NOISY_LOGGERS: Dict[str, int] = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "apscheduler.executors": logging.WARNING,
    "apscheduler.scheduler": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def resolve_level(level_name: Optional[str]) -> int:
    """Level name -> logging level; unknown names fall back to INFO"""
    if not level_name:
        return logging.INFO
    level = getattr(logging, level_name.strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level_name: Optional[str] = None) -> int:
    """
    Configure the root logger once per process.

    Calling it again (the API and a script in the same process, or tests)
    only updates levels and formatters instead of stacking handlers.

    Returns:
        The effective root level
    """
    level = resolve_level(level_name or settings.LOG_LEVEL)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(level)
        for handler in root.handlers:
            handler.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(level)

    # DEBUG keeps third-party detail
    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(logging.DEBUG if level == logging.DEBUG else noisy_level)

    logging.getLogger(__name__).info(
        f"Logging configured at {logging.getLevelName(level)} level ({settings.ENVIRONMENT})"
    )
    return level
