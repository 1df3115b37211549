"""
Two-tier validation of canonical APL entries.

Structural errors exclude the entry from persistence. Semantic warnings are
reported but the entry is stored. Sanitization runs once an entry has passed
the structural checks.
"""

from typing import List
import logging

from ingestion.upc import normalize_upc, validate_check_digit
from models.base import DataSource, ParticipantType, SizeUnit
from schemas.apl import APLEntryCreate, BrandRestriction, SizeRestriction
from schemas.ingestion import ValidationResult

logger = logging.getLogger(__name__)

VALID_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC", "PR", "VI", "GU", "AS", "MP",
})
VALID_DATA_SOURCES = frozenset(s.value for s in DataSource)
VALID_PARTICIPANT_TYPES = frozenset(p.value for p in ParticipantType)
VALID_SIZE_UNITS = frozenset(u.value for u in SizeUnit)

MAX_CATEGORY_LENGTH = 100
MAX_NOTES_LENGTH = 1000
MAX_RESTRICTION_NOTES_LENGTH = 500

# Warning messages are fixed strings so the runner can aggregate them
WARN_UNVERIFIED = "entry is unverified"
WARN_NO_PARTICIPANTS = "no participant types listed; applies to all participants"
WARN_DUPLICATE_PARTICIPANTS = "duplicate participant types"
WARN_LONG_NOTES = f"notes longer than {MAX_NOTES_LENGTH} characters"
WARN_LONG_RESTRICTION_NOTES = f"restriction notes longer than {MAX_RESTRICTION_NOTES_LENGTH} characters"
WARN_MIN_EQUALS_MAX = "size range min equals max; consider an exact size"
WARN_CONTRACT_NO_START = "contract brand has no contract start date"
WARN_CHECK_DIGIT = "UPC check digit does not match"
WARN_UNKNOWN_UNIT = "size unit is not a recognized unit"


class EntryValidator:
    """Validate and sanitize APLEntryCreate models"""

    def validate(self, entry: APLEntryCreate) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        self._check_required(entry, errors)
        self._check_upc(entry, errors, warnings)
        self._check_dates(entry, errors)
        self._check_participants(entry, errors, warnings)

        if entry.size_restriction is not None:
            self._check_size(entry.size_restriction, errors, warnings)
        if entry.brand_restriction is not None:
            self._check_brand(entry.brand_restriction, errors, warnings)
        if entry.additional_restrictions is not None:
            extra = entry.additional_restrictions
            if extra.max_sugar_grams is not None and extra.max_sugar_grams < 0:
                errors.append("max sugar grams cannot be negative")
            if extra.max_sodium_mg is not None and extra.max_sodium_mg < 0:
                errors.append("max sodium mg cannot be negative")
            if extra.restriction_notes and len(extra.restriction_notes) > MAX_RESTRICTION_NOTES_LENGTH:
                warnings.append(WARN_LONG_RESTRICTION_NOTES)

        if not entry.verified:
            warnings.append(WARN_UNVERIFIED)
        if entry.notes and len(entry.notes) > MAX_NOTES_LENGTH:
            warnings.append(WARN_LONG_NOTES)

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _check_required(entry: APLEntryCreate, errors: List[str]) -> None:
        if not entry.state or not entry.state.strip():
            errors.append("state is required")
        elif entry.state.strip().upper() not in VALID_STATE_CODES:
            errors.append(f"invalid state code: {entry.state!r}")

        if not entry.benefit_category or not entry.benefit_category.strip():
            errors.append("benefit category is required")
        elif len(entry.benefit_category) > MAX_CATEGORY_LENGTH:
            errors.append(f"benefit category longer than {MAX_CATEGORY_LENGTH} characters")

        if entry.benefit_subcategory and len(entry.benefit_subcategory) > MAX_CATEGORY_LENGTH:
            errors.append(f"benefit subcategory longer than {MAX_CATEGORY_LENGTH} characters")

        if not entry.data_source:
            errors.append("data source is required")
        elif entry.data_source not in VALID_DATA_SOURCES:
            errors.append(f"invalid data source: {entry.data_source!r}")

    @staticmethod
    def _check_upc(entry: APLEntryCreate, errors: List[str], warnings: List[str]) -> None:
        if not entry.upc:
            errors.append("UPC is required")
            return
        if not entry.upc.isdigit() or not 12 <= len(entry.upc) <= 14:
            if not normalize_upc(entry.upc).is_valid:
                errors.append(f"invalid UPC length: {entry.upc!r}")
                return
        if not validate_check_digit(entry.upc):
            warnings.append(WARN_CHECK_DIGIT)

    @staticmethod
    def _check_dates(entry: APLEntryCreate, errors: List[str]) -> None:
        if entry.effective_date is None:
            errors.append("effective date is required")
            return
        if entry.expiration_date is not None and entry.expiration_date <= entry.effective_date:
            errors.append(
                f"expiration date {entry.expiration_date} must be after "
                f"effective date {entry.effective_date}"
            )

    @staticmethod
    def _check_participants(entry: APLEntryCreate, errors: List[str], warnings: List[str]) -> None:
        if not entry.participant_types:
            warnings.append(WARN_NO_PARTICIPANTS)
            return
        invalid = [p for p in entry.participant_types if p not in VALID_PARTICIPANT_TYPES]
        if invalid:
            errors.append(f"invalid participant types: {', '.join(invalid)}")
        if len(set(entry.participant_types)) != len(entry.participant_types):
            warnings.append(WARN_DUPLICATE_PARTICIPANTS)

    @staticmethod
    def _check_size(size: SizeRestriction, errors: List[str], warnings: List[str]) -> None:
        forms = size.forms()
        if not forms:
            return
        if len(forms) > 1:
            errors.append(f"size restriction must use exactly one form, got {', '.join(forms)}")

        if size.exact_size is not None and size.exact_size <= 0:
            errors.append("exact size must be positive")
        if size.min_size is not None and size.min_size < 0:
            errors.append("minimum size cannot be negative")
        if size.max_size is not None and size.max_size <= 0:
            errors.append("maximum size must be positive")
        if size.min_size is not None and size.max_size is not None:
            if size.min_size > size.max_size:
                errors.append(f"minimum size {size.min_size} is greater than maximum size {size.max_size}")
            elif size.min_size == size.max_size:
                warnings.append(WARN_MIN_EQUALS_MAX)
        if size.allowed_sizes and any(s <= 0 for s in size.allowed_sizes):
            errors.append("allowed sizes must be positive")
        if not size.unit:
            errors.append("size restriction is missing a unit")
        elif size.unit not in VALID_SIZE_UNITS:
            warnings.append(WARN_UNKNOWN_UNIT)

    @staticmethod
    def _check_brand(brand: BrandRestriction, errors: List[str], warnings: List[str]) -> None:
        if brand.allowed_brands and brand.excluded_brands:
            errors.append("brand restriction cannot have both allowed and excluded brands")
        if brand.contract_brand and (brand.allowed_brands or brand.excluded_brands):
            errors.append("contract brand cannot be combined with brand lists")
        if brand.contract_start_date and brand.contract_end_date:
            if brand.contract_end_date <= brand.contract_start_date:
                errors.append("contract end date must be after contract start date")
        if brand.contract_brand and brand.contract_start_date is None:
            warnings.append(WARN_CONTRACT_NO_START)

    def sanitize(self, entry: APLEntryCreate) -> APLEntryCreate:
        """Trimmed, de-duplicated copy with state uppercased and UPC canonical"""
        clean = entry.model_copy(deep=True)

        clean.state = clean.state.strip().upper()
        variants = normalize_upc(clean.upc)
        if variants.is_valid:
            clean.upc = variants.upc12

        clean.benefit_category = _strip(clean.benefit_category)
        clean.benefit_subcategory = _strip(clean.benefit_subcategory) or None
        clean.product_description = _strip(clean.product_description) or None
        clean.notes = _strip(clean.notes) or None
        clean.participant_types = _dedupe([p.strip().lower() for p in clean.participant_types])

        if clean.size_restriction is not None:
            size = clean.size_restriction
            if not size.forms():
                clean.size_restriction = None
            elif size.allowed_sizes:
                size.allowed_sizes = sorted(set(size.allowed_sizes))

        if clean.brand_restriction is not None:
            brand = clean.brand_restriction
            brand.allowed_brands = _dedupe([_strip(b) for b in brand.allowed_brands or []]) or None
            brand.excluded_brands = _dedupe([_strip(b) for b in brand.excluded_brands or []]) or None
            brand.contract_brand = _strip(brand.contract_brand) or None

        if clean.additional_restrictions is not None:
            extra = clean.additional_restrictions
            extra.flags = _dedupe(extra.flags)
            extra.fortification_required = _dedupe([_strip(f) for f in extra.fortification_required])
            extra.other = _dedupe([_strip(o) for o in extra.other])
            extra.restriction_notes = _strip(extra.restriction_notes) or None
            if extra.is_empty():
                clean.additional_restrictions = None

        return clean


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _dedupe(items):
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen
