"""
Pytest configuration and fixtures
"""

import os

# Settings are read at import time; point everything at SQLite before the
# application modules are imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./apl_test.db")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ALERT_WEBHOOK_URL"] = ""

from datetime import date
from pathlib import Path
from typing import AsyncGenerator, Dict, List, Optional

import pandas as pd
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from models.base import Base
# Import all models to ensure they are registered
from models.apl_entry import APLEntry  # noqa: F401
from models.sync_status import SyncStatus  # noqa: F401
from models.sync_run import SyncRun  # noqa: F401
from ingestion.alerts import AlertSink
from schemas.ingestion import AlertSeverity


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine with all tables created"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'apl.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


class RecordingAlertSink(AlertSink):
    """Collects alerts instead of sending them"""

    def __init__(self):
        self.sent: List[tuple] = []

    async def send(self, message, severity=AlertSeverity.WARNING):
        self.sent.append((severity, message))

    def severities(self) -> List[AlertSeverity]:
        return [severity for severity, _ in self.sent]


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest.fixture
def as_of() -> date:
    """Fixed processing date inside the Florida rollout window"""
    return date(2025, 11, 15)


@pytest.fixture
def write_apl_file(tmp_path):
    """
    Write rows to a CSV or XLSX file and return its path.

    Usage:
        path = write_apl_file([{"UPC": "041220576081", ...}], name="mi.csv")
    """
    def _write(rows: List[Dict[str, Optional[str]]], name: str = "apl.csv") -> str:
        path: Path = tmp_path / name
        df = pd.DataFrame(rows, dtype=str)
        if path.suffix == ".xlsx":
            df.to_excel(path, index=False, engine="openpyxl")
        else:
            df.to_csv(path, index=False)
        return str(path)

    return _write


@pytest.fixture
def michigan_rows() -> List[Dict[str, str]]:
    """Michigan style rows: one per product, with one row missing its UPC"""
    return [
        {
            "UPC": "041220576081",
            "Product Description": "Whole Grain Oat Cereal 12 oz",
            "Category": "Cereal",
            "Subcategory": "Hot Cereal",
            "Package Size": "12-36 oz",
            "Participant Types": "Pregnant, Postpartum, Breastfeeding, Child",
            "Brand": "Quaker",
            "Effective Date": "2025-01-01",
            "Expiration Date": "",
            "Notes": "",
        },
        {
            "UPC": "070038000563",
            "Product Description": "Low Fat Milk 1 gal",
            "Category": "Milk",
            "Subcategory": "",
            "Package Size": "1 gal",
            "Participant Types": "All",
            "Brand": "",
            "Effective Date": "2025-01-01",
            "Expiration Date": "2026-12-31",
            "Notes": "Low fat or skim only",
        },
        {
            "UPC": "016000275287",
            "Product Description": "Cheerios 8.9 oz",
            "Category": "Cereal",
            "Subcategory": "",
            "Package Size": "8.9 oz",
            "Participant Types": "Child",
            "Brand": "General Mills",
            "Effective Date": "2025-01-01",
            "Expiration Date": "",
            "Notes": "",
        },
        {
            "UPC": "",
            "Product Description": "Section header",
            "Category": "Juice",
            "Subcategory": "",
            "Package Size": "",
            "Participant Types": "",
            "Brand": "",
            "Effective Date": "",
            "Expiration Date": "",
            "Notes": "",
        },
    ]
