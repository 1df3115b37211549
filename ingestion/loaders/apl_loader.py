"""
Load validated APL entries with natural-key upserts (idempotency)
"""

from typing import List, Tuple
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import settings
from core.exceptions import UpsertError, DatabaseError, DatabaseConnectionError
from ingestion.loaders.apl_repository import APLRepository
from schemas.apl import APLEntryCreate
from schemas.ingestion import IngestionStats
import logging

logger = logging.getLogger(__name__)


class APLLoader:
    """
    Load entries of one run into the database.

    Ensures:
    - No duplicate rows on repeated runs (natural key upsert)
    - Duplicate keys within one file collapse to the last occurrence
    - One transaction per run: any failure rolls back every upsert
    """

    def __init__(self, db_session: AsyncSession, batch_size: int = None):
        self.db = db_session
        self.batch_size = batch_size or settings.ETL_BATCH_SIZE

    @staticmethod
    def deduplicate(entries: List[APLEntryCreate], stats: IngestionStats) -> List[APLEntryCreate]:
        """Last entry wins for a repeated natural key; repeats are counted"""
        by_key = {}
        for entry in entries:
            key = entry.natural_key
            if key in by_key:
                stats.duplicates += 1
                # Re-insert at the position of the last occurrence
                del by_key[key]
            by_key[key] = entry
        return list(by_key.values())

    async def load(self, entries: List[APLEntryCreate], stats: IngestionStats) -> Tuple[int, int]:
        """
        Upsert entries and commit once.

        Returns:
            (additions, updates)

        Raises:
            UpsertError: an entry could not be written (transaction rolled back)
            DatabaseConnectionError: the connection dropped (retryable)
            DatabaseError: the commit failed (transaction rolled back)
        """
        unique = self.deduplicate(entries, stats)
        if not unique:
            return 0, 0

        repository = APLRepository(self.db)
        additions = 0
        updates = 0

        try:
            await repository.preload(stats.state)

            for index, entry in enumerate(unique):
                try:
                    _, created = await repository.upsert(entry)
                except (SQLAlchemyError, ValueError) as e:
                    raise UpsertError(
                        f"Failed to upsert {entry.entry_id}",
                        context={
                            "entry_id": entry.entry_id,
                            "batch_index": index,
                            "state": stats.state,
                        },
                        original_exception=e
                    )

                if created:
                    additions += 1
                else:
                    updates += 1

                if (index + 1) % self.batch_size == 0:
                    await self.db.flush()
                    logger.debug(f"Flushed {index + 1}/{len(unique)} entries for {stats.state}")

            await self.db.commit()

        except UpsertError:
            await self.db.rollback()
            raise
        except OperationalError as e:
            await self.db.rollback()
            raise DatabaseConnectionError(
                "Lost database connection while persisting APL entries",
                context={"state": stats.state, "operation": "COMMIT", "table_name": "apl_entries"},
                original_exception=e
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                "Failed to persist APL entries",
                context={
                    "state": stats.state,
                    "operation": "UPSERT",
                    "table_name": "apl_entries",
                    "entries": len(unique),
                },
                original_exception=e
            )

        stats.additions = additions
        stats.updates = updates
        logger.info(f"Loaded {stats.state}: {additions} added, {updates} updated")
        return additions, updates
