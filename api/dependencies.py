"""
FastAPI dependencies
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import async_session_maker
from ingestion.scheduler import SyncScheduler


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler
