"""
Eligibility lookup by state and scanned/listed UPC
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from ingestion.loaders.apl_repository import APLRepository
from ingestion.upc import format_upc_for_display, normalize_upc
from schemas.api import EligibilityResponse
from schemas.apl import APLEntryResponse

router = APIRouter(prefix="/apl", tags=["APL"])


@router.get("/{state}/{upc}", response_model=EligibilityResponse)
async def lookup_upc(
    state: str,
    upc: str,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Entries for a UPC in a state. Any spelling of the code works (UPC-E,
    EAN-13, missing leading zeros). With as_of, only entries in effect on
    that date are returned.
    """
    variants = normalize_upc(upc)
    if not variants.is_valid:
        raise HTTPException(status_code=400, detail=f"Invalid UPC: {upc!r}")

    entries = await APLRepository(db).query_by_state_and_upc(state, upc, as_of=as_of)

    return EligibilityResponse(
        state=state.upper(),
        upc=variants.upc12,
        upc_display=format_upc_for_display(upc),
        eligible=any(e.eligible for e in entries),
        entries=[APLEntryResponse.model_validate(e) for e in entries],
    )
