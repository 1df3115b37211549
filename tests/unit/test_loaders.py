"""
Unit tests for the APL repository and loader
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from core.exceptions import DatabaseConnectionError, DatabaseError, RetryableError, UpsertError
from ingestion.loaders.apl_loader import APLLoader
from ingestion.loaders.apl_repository import APLRepository, entry_to_columns
from models.apl_entry import APLEntry
from models.base import DataSource
from schemas.apl import APLEntryCreate, SizeRestriction
from schemas.ingestion import IngestionStats


def make_entry(upc="041220576081", effective=date(2025, 1, 1), **overrides) -> APLEntryCreate:
    values = {
        "state": "MI",
        "upc": upc,
        "benefit_category": "Cereal",
        "participant_types": ["child"],
        "effective_date": effective,
        "data_source": "fis",
    }
    values.update(overrides)
    return APLEntryCreate(**values)


@pytest.fixture
def stats():
    return IngestionStats(state="MI", data_source="fis")


class TestEntryModel:

    def test_entry_id(self):
        assert make_entry().entry_id == "apl_mi_041220576081_20250101"

    def test_natural_key_is_date_only(self):
        assert make_entry().natural_key == ("MI", "041220576081", date(2025, 1, 1))

    def test_entry_to_columns(self):
        entry = make_entry(size_restriction=SizeRestriction(exact_size=12, unit="oz"))
        columns = entry_to_columns(entry)

        assert columns["data_source"] == DataSource.FIS
        assert columns["size_restriction"] == {"exact_size": 12.0, "unit": "oz"}
        assert columns["brand_restriction"] is None


class TestDeduplicate:

    def test_last_occurrence_wins(self, stats):
        first = make_entry(product_description="first")
        other = make_entry(upc="070038000563")
        last = make_entry(product_description="last")

        unique = APLLoader.deduplicate([first, other, last], stats)

        assert len(unique) == 2
        assert stats.duplicates == 1
        assert unique[-1].product_description == "last"

    def test_different_effective_dates_are_distinct(self, stats):
        unique = APLLoader.deduplicate(
            [make_entry(), make_entry(effective=date(2025, 7, 1))], stats
        )

        assert len(unique) == 2
        assert stats.duplicates == 0


class TestAPLLoader:

    @pytest.mark.asyncio
    async def test_load_inserts(self, db_session, stats):
        loader = APLLoader(db_session, batch_size=2)

        additions, updates = await loader.load(
            [make_entry(), make_entry(upc="070038000563"), make_entry(upc="016000275287")],
            stats,
        )

        assert (additions, updates) == (3, 0)
        assert (stats.additions, stats.updates) == (3, 0)
        assert await APLRepository(db_session).count_entries("MI") == 3

    @pytest.mark.asyncio
    async def test_reload_updates_in_place(self, db_session, session_factory, stats):
        await APLLoader(db_session).load([make_entry(notes="v1")], stats)

        # Row-owned fields survive later loads
        row = (await db_session.execute(select(APLEntry))).scalar_one()
        row.verified = True
        created_at = row.created_at
        await db_session.commit()

        async with session_factory() as session:
            second = IngestionStats(state="MI", data_source="fis")
            additions, updates = await APLLoader(session).load([make_entry(notes="v2")], second)

            assert (additions, updates) == (0, 1)
            stored = (await session.execute(select(APLEntry))).scalar_one()
            assert stored.id == "apl_mi_041220576081_20250101"
            assert stored.notes == "v2"
            assert stored.verified is True
            assert stored.created_at == created_at
            assert await APLRepository(session).count_entries() == 1

    @pytest.mark.asyncio
    async def test_load_empty(self, stats):
        mock_session = AsyncMock()
        loader = APLLoader(mock_session)

        assert await loader.load([], stats) == (0, 0)
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_upsert_rolls_back(self, db_session, stats, monkeypatch):
        original = APLRepository.upsert
        calls = {"count": 0}

        async def flaky_upsert(self, entry):
            calls["count"] += 1
            if calls["count"] == 2:
                raise SQLAlchemyError("disk full")
            return await original(self, entry)

        monkeypatch.setattr(APLRepository, "upsert", flaky_upsert)

        with pytest.raises(UpsertError) as exc_info:
            await APLLoader(db_session).load(
                [make_entry(), make_entry(upc="070038000563")], stats
            )

        assert exc_info.value.context["batch_index"] == 1
        assert await APLRepository(db_session).count_entries() == 0
        assert stats.additions == 0

    @pytest.mark.asyncio
    async def test_commit_failure_is_database_error(self, db_session, stats, monkeypatch):
        monkeypatch.setattr(db_session, "commit", AsyncMock(side_effect=SQLAlchemyError("lost connection")))

        with pytest.raises(DatabaseError):
            await APLLoader(db_session).load([make_entry()], stats)

    @pytest.mark.asyncio
    async def test_lost_connection_is_retryable(self, db_session, stats, monkeypatch):
        error = OperationalError("COMMIT", {}, Exception("server closed the connection"))
        monkeypatch.setattr(db_session, "commit", AsyncMock(side_effect=error))

        with pytest.raises(DatabaseConnectionError) as exc_info:
            await APLLoader(db_session).load([make_entry()], stats)

        assert isinstance(exc_info.value, RetryableError)


class TestAPLRepository:

    @pytest.mark.asyncio
    async def test_query_any_upc_spelling(self, db_session, stats):
        await APLLoader(db_session).load([make_entry()], stats)
        repository = APLRepository(db_session)

        for spelling in ("041220576081", "41220576081", "0041220576081", "00041220576081"):
            entries = await repository.query_by_state_and_upc("mi", spelling)
            assert [e.upc for e in entries] == ["041220576081"]

    @pytest.mark.asyncio
    async def test_query_as_of(self, db_session, stats):
        await APLLoader(db_session).load([
            make_entry(effective=date(2025, 1, 1), expiration_date=date(2025, 7, 1)),
            make_entry(effective=date(2025, 7, 1)),
        ], stats)
        repository = APLRepository(db_session)

        all_entries = await repository.query_by_state_and_upc("MI", "041220576081")
        assert [e.effective_date for e in all_entries] == [date(2025, 7, 1), date(2025, 1, 1)]

        march = await repository.query_by_state_and_upc("MI", "041220576081", as_of=date(2025, 3, 1))
        assert [e.effective_date for e in march] == [date(2025, 1, 1)]

        before = await repository.query_by_state_and_upc("MI", "041220576081", as_of=date(2024, 12, 31))
        assert before == []

    @pytest.mark.asyncio
    async def test_query_other_state(self, db_session, stats):
        await APLLoader(db_session).load([make_entry()], stats)

        assert await APLRepository(db_session).query_by_state_and_upc("FL", "041220576081") == []
