"""
Pydantic schemas for canonical APL entries and their restriction sub-models.

The models are deliberately permissive (plain strings for state, data source
and participant types) so that a malformed row still produces an entry the
validator can inspect and report on instead of failing in the constructor.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Tuple
from datetime import date, datetime
from enum import Enum
from models.base import DataSource


class PolicyFlag(str, Enum):
    """Tagged vocabulary for additional restrictions"""
    ORGANIC_REQUIRED = "organic_required"
    LOCAL_PREFERRED = "local_preferred"
    NO_ARTIFICIAL_DYES = "no_artificial_dyes"
    WHOLE_GRAIN_REQUIRED = "whole_grain_required"
    SUGAR_LIMIT = "sugar_limit"
    LOW_FAT_REQUIRED = "low_fat_required"
    SODIUM_LIMIT = "sodium_limit"


class UPCVariants(BaseModel):
    """All representations of one scanned or listed code"""
    original: str
    upc12: str = ""
    ean13: str = ""
    trimmed: str = ""
    check_digit: str = ""
    is_valid: bool = False
    check_digit_valid: bool = False


class SizeRestriction(BaseModel):
    """Exactly one of exact size, min/max range or allowed sizes, plus a unit"""
    exact_size: Optional[float] = None
    min_size: Optional[float] = None
    max_size: Optional[float] = None
    allowed_sizes: Optional[List[float]] = None
    unit: Optional[str] = None

    def forms(self) -> List[str]:
        """Names of the size forms that are populated"""
        present = []
        if self.exact_size is not None:
            present.append("exact")
        if self.min_size is not None or self.max_size is not None:
            present.append("range")
        if self.allowed_sizes:
            present.append("allowed")
        return present


class BrandRestriction(BaseModel):
    """Allow-list, deny-list or contract brand with a validity window"""
    allowed_brands: Optional[List[str]] = None
    excluded_brands: Optional[List[str]] = None
    contract_brand: Optional[str] = None
    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None


class AdditionalRestrictions(BaseModel):
    flags: List[PolicyFlag] = Field(default_factory=list)
    max_sugar_grams: Optional[float] = None
    max_sodium_mg: Optional[float] = None
    fortification_required: List[str] = Field(default_factory=list)
    restriction_notes: Optional[str] = None
    # Free-text flags from feeds that don't map onto the vocabulary yet
    other: List[str] = Field(default_factory=list)

    def add_flag(self, flag: PolicyFlag) -> None:
        if flag not in self.flags:
            self.flags.append(flag)

    def has_flag(self, flag: PolicyFlag) -> bool:
        return flag in self.flags

    def is_empty(self) -> bool:
        return not (
            self.flags
            or self.max_sugar_grams is not None
            or self.max_sodium_mg is not None
            or self.fortification_required
            or self.restriction_notes
            or self.other
        )


class APLEntryCreate(BaseModel):
    """Canonical entry produced by the row transformer"""
    state: str
    upc: str
    eligible: bool = True
    benefit_category: Optional[str] = None
    benefit_subcategory: Optional[str] = None
    participant_types: List[str] = Field(default_factory=list)
    product_description: Optional[str] = None
    size_restriction: Optional[SizeRestriction] = None
    brand_restriction: Optional[BrandRestriction] = None
    additional_restrictions: Optional[AdditionalRestrictions] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    notes: Optional[str] = None
    data_source: Optional[str] = None
    verified: bool = False
    source_hash: Optional[str] = None
    # 1-based data row the entry came from, for error messages
    row_number: Optional[int] = None

    @property
    def natural_key(self) -> Tuple[str, str, Optional[date]]:
        return (self.state.upper(), self.upc, self.effective_date)

    @property
    def entry_id(self) -> str:
        effective = self.effective_date.strftime("%Y%m%d") if self.effective_date else "undated"
        return f"apl_{self.state.lower()}_{self.upc}_{effective}"

    def restrictions(self) -> AdditionalRestrictions:
        """Additional restrictions, created on first use"""
        if self.additional_restrictions is None:
            self.additional_restrictions = AdditionalRestrictions()
        return self.additional_restrictions


class APLEntryResponse(BaseModel):
    id: str
    state: str
    upc: str
    eligible: bool
    benefit_category: str
    benefit_subcategory: Optional[str] = None
    participant_types: Optional[List[str]] = None
    product_description: Optional[str] = None
    size_restriction: Optional[SizeRestriction] = None
    brand_restriction: Optional[BrandRestriction] = None
    additional_restrictions: Optional[AdditionalRestrictions] = None
    effective_date: date
    expiration_date: Optional[date] = None
    notes: Optional[str] = None
    data_source: DataSource
    verified: bool
    last_updated: datetime

    class Config:
        from_attributes = True
        use_enum_values = True
