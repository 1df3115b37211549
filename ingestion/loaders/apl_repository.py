"""
Repository for APL entries keyed by (state, upc, effective_date)
"""

from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.upc import generate_upc_variants
from models.apl_entry import APLEntry
from models.base import DataSource
from schemas.apl import APLEntryCreate

logger = logging.getLogger(__name__)

NaturalKey = Tuple[str, str, date]

# Fields a feed is allowed to change on an existing entry
MUTABLE_FIELDS = (
    "eligible",
    "benefit_category",
    "benefit_subcategory",
    "participant_types",
    "product_description",
    "size_restriction",
    "brand_restriction",
    "additional_restrictions",
    "expiration_date",
    "notes",
    "data_source",
    "source_hash",
)


def entry_to_columns(entry: APLEntryCreate) -> Dict:
    """Column values for an entry; restriction models become JSON dicts"""
    def dump(model):
        return model.model_dump(mode="json", exclude_none=True) if model is not None else None

    return {
        "state": entry.state.upper(),
        "upc": entry.upc,
        "effective_date": entry.effective_date,
        "eligible": entry.eligible,
        "benefit_category": entry.benefit_category,
        "benefit_subcategory": entry.benefit_subcategory,
        "participant_types": list(entry.participant_types),
        "product_description": entry.product_description,
        "size_restriction": dump(entry.size_restriction),
        "brand_restriction": dump(entry.brand_restriction),
        "additional_restrictions": dump(entry.additional_restrictions),
        "expiration_date": entry.expiration_date,
        "notes": entry.notes,
        "data_source": DataSource(entry.data_source),
        "source_hash": entry.source_hash,
    }


class APLRepository:
    """
    Data access for APLEntry rows.

    preload() caches a state's existing rows so a full-file upsert issues one
    SELECT instead of one per entry.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self._cache: Optional[Dict[NaturalKey, APLEntry]] = None
        self._cached_state: Optional[str] = None

    async def preload(self, state: str) -> int:
        state = state.upper()
        result = await self.db.execute(select(APLEntry).where(APLEntry.state == state))
        self._cache = {
            (row.state, row.upc, row.effective_date): row
            for row in result.scalars().all()
        }
        self._cached_state = state
        logger.debug(f"Preloaded {len(self._cache)} existing entries for {state}")
        return len(self._cache)

    async def find_by_natural_key(self, state: str, upc: str, effective_date: date) -> Optional[APLEntry]:
        key = (state.upper(), upc, effective_date)
        if self._cache is not None and self._cached_state == key[0]:
            return self._cache.get(key)

        result = await self.db.execute(
            select(APLEntry).where(
                APLEntry.state == key[0],
                APLEntry.upc == upc,
                APLEntry.effective_date == effective_date,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, entry: APLEntryCreate) -> Tuple[APLEntry, bool]:
        """
        Insert or update by natural key.

        Returns:
            The row and True when it was created. id, created_at and verified
            are kept on update.
        """
        values = entry_to_columns(entry)
        now = datetime.utcnow()
        existing = await self.find_by_natural_key(entry.state, entry.upc, entry.effective_date)

        if existing is None:
            row = APLEntry(
                id=entry.entry_id,
                verified=entry.verified,
                last_updated=now,
                created_at=now,
                updated_at=now,
                **values,
            )
            self.db.add(row)
            if self._cache is not None and self._cached_state == values["state"]:
                self._cache[(row.state, row.upc, row.effective_date)] = row
            return row, True

        for field_name in MUTABLE_FIELDS:
            setattr(existing, field_name, values[field_name])
        existing.last_updated = now
        existing.updated_at = now
        return existing, False

    async def query_by_state_and_upc(
        self,
        state: str,
        upc: str,
        as_of: Optional[date] = None
    ) -> List[APLEntry]:
        """
        Entries for a scanned or listed code in any of its spellings, newest
        effective date first. With as_of, only entries in effect that day.
        """
        variants = generate_upc_variants(upc)
        if not variants:
            return []

        stmt = select(APLEntry).where(
            APLEntry.state == state.upper(),
            APLEntry.upc.in_(variants),
        )
        if as_of is not None:
            stmt = stmt.where(
                APLEntry.effective_date <= as_of,
                or_(APLEntry.expiration_date.is_(None), APLEntry.expiration_date > as_of),
            )
        stmt = stmt.order_by(APLEntry.effective_date.desc())

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_entries(self, state: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(APLEntry)
        if state:
            stmt = stmt.where(APLEntry.state == state.upper())
        result = await self.db.execute(stmt)
        return result.scalar_one()
