"""
Transform raw APL rows into canonical entries using a declarative FieldMap
"""

from datetime import date, datetime, timedelta
from typing import Dict, Any, Optional, List
import re
import logging

import pandas as pd

from core.exceptions import RowTransformError
from ingestion.upc import normalize_upc
from ingestion.transformers.field_map import FieldMap
from models.base import ParticipantType
from schemas.apl import (
    APLEntryCreate,
    AdditionalRestrictions,
    BrandRestriction,
    PolicyFlag,
    SizeRestriction,
)
from schemas.ingestion import IngestionStats

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown"

ALL_PARTICIPANTS = [p.value for p in ParticipantType]

_UNIT = r"fl\.?\s*oz|ounces?|oz|pounds?|lbs?|gal(?:lons?)?|g|ml|l|ct"
# Decimal, fraction ("1/2") or mixed number ("1 1/2"); never the tail of another number
_NUMBER = r"(?<![\d./])(?:\d+\s+\d+/[1-9]\d*|\d+/[1-9]\d*|\d+(?:\.\d+)?)"

RANGE_PATTERN = re.compile(
    rf"({_NUMBER})\s*(?:{_UNIT})?\s*(?:-|–|to)\s*({_NUMBER})\s*({_UNIT})\b",
    re.IGNORECASE,
)
EXACT_PATTERN = re.compile(rf"({_NUMBER})\s*({_UNIT})\b", re.IGNORECASE)
UNIT_PATTERN = re.compile(rf"\b({_UNIT})\b", re.IGNORECASE)
NUMBER_PATTERN = re.compile(_NUMBER)
ENUMERATION_PATTERN = re.compile(r"\bor\b|,", re.IGNORECASE)

UNIT_ALIASES = {
    "floz": "fl_oz",
    "ounce": "oz",
    "ounces": "oz",
    "pound": "lb",
    "pounds": "lb",
    "lbs": "lb",
    "gallon": "gal",
    "gallons": "gal",
}

BRAND_SEPARATORS = re.compile(r"[,;|]")

# Excel day 0 for serial date numbers
EXCEL_EPOCH = date(1899, 12, 30)


def canonical_unit(raw_unit: Optional[str], default: Optional[str] = None) -> Optional[str]:
    if not raw_unit:
        return default
    unit = re.sub(r"[\s.]", "", raw_unit.lower())
    return UNIT_ALIASES.get(unit, unit)


def _to_number(token: str) -> float:
    total = 0.0
    for part in token.split():
        if "/" in part:
            numerator, denominator = part.split("/")
            total += float(numerator) / float(denominator)
        else:
            total += float(part)
    return total


def parse_size_text(text: Optional[str], default_unit: Optional[str] = None) -> Optional[SizeRestriction]:
    """
    Parse a free-text size: range ("8.9-36 oz"), enumerated ("12 oz or 18 oz",
    "12, 18 oz") or exact ("12 oz"). Anything else means no restriction.
    """
    if not text:
        return None

    match = RANGE_PATTERN.search(text)
    if match:
        return SizeRestriction(
            min_size=_to_number(match.group(1)),
            max_size=_to_number(match.group(2)),
            unit=canonical_unit(match.group(3)),
        )

    if ENUMERATION_PATTERN.search(text):
        numbers = [_to_number(n) for n in NUMBER_PATTERN.findall(text)]
        unit_match = UNIT_PATTERN.search(text)
        if len(numbers) >= 2 and unit_match:
            return SizeRestriction(
                allowed_sizes=sorted(set(numbers)),
                unit=canonical_unit(unit_match.group(1)),
            )

    match = EXACT_PATTERN.search(text)
    if match:
        return SizeRestriction(
            exact_size=_to_number(match.group(1)),
            unit=canonical_unit(match.group(2)),
        )

    return None


def _first_number(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    match = NUMBER_PATTERN.search(text)
    return _to_number(match.group(0)) if match else None


def parse_participants(text: Optional[str], aliases: Dict[str, str]) -> List[str]:
    """
    Participant types named in a cell; "all" expands to every type.

    Full words match as substrings; short abbreviations ("pp", "bf") must start
    a word so they don't match inside unrelated words.
    """
    if not text:
        return []

    lowered = text.lower().strip()
    if lowered in ("all", "all participants"):
        return list(ALL_PARTICIPANTS)

    found = set()
    for alias, canonical in aliases.items():
        alias = alias.lower()
        if len(alias) <= 4:
            hit = re.search(rf"\b{re.escape(alias)}", lowered) is not None
        else:
            hit = alias in lowered
        if hit:
            found.add(canonical)

    return [p for p in ALL_PARTICIPANTS if p in found]


def split_brands(text: Optional[str]) -> List[str]:
    if not text:
        return []
    brands = []
    for part in BRAND_SEPARATORS.split(text):
        part = part.strip()
        if part and part not in brands:
            brands.append(part)
    return brands


class RowTransformer:
    """
    Transform rows of one feed into APLEntryCreate models.

    Handles:
    - Column lookup through the feed's FieldMap
    - UPC normalization (missing -> skipped, invalid -> rejected)
    - Category, participant, size and brand parsing
    - Keyword-derived additional restrictions
    - Date parsing with the feed's day/month convention
    """

    def __init__(
        self,
        state: str,
        data_source: str,
        field_map: FieldMap,
        source_hash: Optional[str] = None,
        today: Optional[date] = None
    ):
        self.state = state
        self.data_source = data_source
        self.field_map = field_map
        self.source_hash = source_hash
        self.today = today or date.today()

    def transform(
        self,
        row: Dict[str, Optional[str]],
        row_number: int,
        stats: IngestionStats
    ) -> Optional[APLEntryCreate]:
        """
        Transform one row.

        Returns:
            The entry, or None when the row was skipped (no UPC) or rejected
            (invalid UPC); counters on stats are updated accordingly.

        Raises:
            RowTransformError: a present value could not be parsed (bad date)
        """
        fm = self.field_map

        raw_upc = fm.value(row, "upc")
        if raw_upc is None:
            stats.skipped_rows += 1
            return None

        variants = normalize_upc(raw_upc)
        if not variants.is_valid:
            stats.invalid_entries += 1
            stats.add_error(f"Row {row_number}: invalid UPC {raw_upc!r}")
            logger.debug(f"{self.state} row {row_number}: invalid UPC {raw_upc!r}")
            return None

        effective_date = self._parse_date(row, "effective_date", row_number) or self.today
        expiration_date = self._parse_date(row, "expiration_date", row_number)

        category = fm.value(row, "category")
        subcategory = fm.value(row, "subcategory")
        notes = fm.value(row, "notes")

        entry = APLEntryCreate(
            state=self.state,
            upc=variants.upc12,
            eligible=True,
            benefit_category=self._benefit_category(category, subcategory),
            benefit_subcategory=subcategory,
            participant_types=parse_participants(
                fm.value(row, "participants"), fm.participant_aliases
            ),
            product_description=fm.value(row, "description"),
            size_restriction=self._size_restriction(row),
            brand_restriction=self._brand_restriction(row),
            additional_restrictions=self._additional_restrictions(category, notes),
            effective_date=effective_date,
            expiration_date=expiration_date,
            notes=notes,
            data_source=self.data_source,
            verified=False,
            source_hash=self.source_hash,
            row_number=row_number,
        )
        return entry

    @staticmethod
    def _benefit_category(category: Optional[str], subcategory: Optional[str]) -> str:
        if not category:
            return UNKNOWN_CATEGORY
        if subcategory:
            return f"{category} - {subcategory}"
        return category

    def _size_restriction(self, row: Dict[str, Optional[str]]) -> Optional[SizeRestriction]:
        fm = self.field_map
        min_text = fm.value(row, "min_size")
        max_text = fm.value(row, "max_size")
        unit_text = fm.value(row, "unit")

        if min_text or max_text:
            min_size = _first_number(min_text)
            max_size = _first_number(max_text)
            if min_size is not None or max_size is not None:
                embedded = UNIT_PATTERN.search(" ".join(t for t in (min_text, max_text) if t))
                unit = canonical_unit(
                    unit_text or (embedded.group(1) if embedded else None),
                    default=fm.default_unit,
                )
                return SizeRestriction(min_size=min_size, max_size=max_size, unit=unit)

        restriction = parse_size_text(fm.value(row, "size"), fm.default_unit)
        if restriction is not None and restriction.unit is None:
            restriction.unit = canonical_unit(unit_text, default=fm.default_unit)
        return restriction

    def _brand_restriction(self, row: Dict[str, Optional[str]]) -> Optional[BrandRestriction]:
        fm = self.field_map
        contract_brand = fm.value(row, "contract_brand")
        if contract_brand:
            return BrandRestriction(contract_brand=contract_brand)

        allowed = split_brands(fm.value(row, "brand"))
        excluded = split_brands(fm.value(row, "excluded_brand"))
        if not allowed and not excluded:
            return None
        return BrandRestriction(
            allowed_brands=allowed or None,
            excluded_brands=excluded or None,
        )

    @staticmethod
    def _additional_restrictions(
        category: Optional[str],
        notes: Optional[str]
    ) -> Optional[AdditionalRestrictions]:
        restrictions = AdditionalRestrictions()

        category_lower = (category or "").lower()
        if "cereal" in category_lower or "whole grain" in category_lower:
            restrictions.add_flag(PolicyFlag.WHOLE_GRAIN_REQUIRED)

        notes_lower = (notes or "").lower()
        if "sugar" in notes_lower:
            restrictions.add_flag(PolicyFlag.SUGAR_LIMIT)
        if "low fat" in notes_lower or "reduced fat" in notes_lower:
            restrictions.add_flag(PolicyFlag.LOW_FAT_REQUIRED)
        if "sodium" in notes_lower:
            restrictions.add_flag(PolicyFlag.SODIUM_LIMIT)

        return None if restrictions.is_empty() else restrictions

    def _parse_date(
        self,
        row: Dict[str, Optional[str]],
        logical_field: str,
        row_number: int
    ) -> Optional[date]:
        raw = self.field_map.value(row, logical_field)
        if raw is None:
            return None
        return parse_date_value(raw, dayfirst=self.field_map.dayfirst, field_name=logical_field, row_number=row_number)


def parse_date_value(
    raw: Any,
    dayfirst: bool = False,
    field_name: str = "date",
    row_number: Optional[int] = None
) -> date:
    """
    Parse a date cell. Accepts ISO strings, US/EU formatted strings, Excel
    datetime text and Excel serial day numbers.

    Raises:
        RowTransformError: the value is present but not a date
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = str(raw).strip()
    if text.isdigit() and len(text) == 5:
        return EXCEL_EPOCH + timedelta(days=int(text))

    try:
        parsed = pd.to_datetime(text, dayfirst=dayfirst)
    except (ValueError, OverflowError, TypeError) as e:
        raise RowTransformError(
            f"Unparseable {field_name}: {text!r}",
            context={"row_number": row_number, "field_name": field_name, "field_value": text},
            original_exception=e
        )

    if pd.isna(parsed):
        raise RowTransformError(
            f"Unparseable {field_name}: {text!r}",
            context={"row_number": row_number, "field_name": field_name, "field_value": text}
        )
    return parsed.date()
