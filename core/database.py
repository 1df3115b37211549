"""
Database session management with SQLAlchemy async
"""

from typing import Any, Dict

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: str = None, echo: bool = False) -> AsyncEngine:
    """Create an async engine; asyncpg gets a per-command timeout."""
    url = database_url or settings.DATABASE_URL
    connect_args: Dict[str, Any] = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args["command_timeout"] = settings.DB_COMMAND_TIMEOUT_SECONDS

    return create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,
        connect_args=connect_args,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


engine = build_engine()

async_session_maker = build_session_maker(engine)
