"""
Declarative column mapping for state APL feeds.

Each feed names its columns differently ("UPC/PLU", "Item Description",
"Begin Date", ...). A FieldMap lists, per logical field, the candidate column
names in priority order; the generic row transformer only ever asks the map
for logical fields.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import re

_WHITESPACE = re.compile(r"\s+")

LOGICAL_FIELDS = (
    "upc",
    "description",
    "category",
    "subcategory",
    "size",
    "min_size",
    "max_size",
    "unit",
    "participants",
    "brand",
    "excluded_brand",
    "contract_brand",
    "effective_date",
    "expiration_date",
    "notes",
)

# Alias -> canonical participant type
DEFAULT_PARTICIPANT_ALIASES: Dict[str, str] = {
    "pregnant": "pregnant",
    "postpartum": "postpartum",
    "post-partum": "postpartum",
    "post partum": "postpartum",
    "breastfeeding": "breastfeeding",
    "breast feeding": "breastfeeding",
    "nursing": "breastfeeding",
    "infant": "infant",
    "child": "child",
}


def normalize_column_name(name: str) -> str:
    return _WHITESPACE.sub(" ", str(name).strip().lower())


@dataclass
class FieldMap:
    """Logical field -> ordered candidate column names, plus feed conventions"""
    upc: List[str]
    description: List[str] = field(default_factory=list)
    category: List[str] = field(default_factory=list)
    subcategory: List[str] = field(default_factory=list)
    size: List[str] = field(default_factory=list)
    min_size: List[str] = field(default_factory=list)
    max_size: List[str] = field(default_factory=list)
    unit: List[str] = field(default_factory=list)
    participants: List[str] = field(default_factory=list)
    brand: List[str] = field(default_factory=list)
    excluded_brand: List[str] = field(default_factory=list)
    contract_brand: List[str] = field(default_factory=list)
    effective_date: List[str] = field(default_factory=list)
    expiration_date: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    participant_aliases: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PARTICIPANT_ALIASES)
    )
    dayfirst: bool = False
    default_unit: str = "oz"

    def candidates(self, logical_field: str) -> List[str]:
        if logical_field not in LOGICAL_FIELDS:
            raise KeyError(f"Unknown logical field: {logical_field}")
        return getattr(self, logical_field)

    def value(self, row: Dict[str, Optional[str]], logical_field: str) -> Optional[str]:
        """First non-empty value among the candidate columns"""
        return first_present(row, self.candidates(logical_field))


def first_present(row: Dict[str, Optional[str]], columns: List[str]) -> Optional[str]:
    """
    Value of the first candidate column that is present and non-empty.

    Exact column names are tried first, then a case and whitespace
    insensitive match, so "UPC Code" also finds " upc  code ".
    """
    normalized = None
    for column in columns:
        value = row.get(column)
        if value is not None and str(value).strip():
            return str(value).strip()

        if normalized is None:
            normalized = {normalize_column_name(k): v for k, v in row.items()}
        value = normalized.get(normalize_column_name(column))
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def values_of(row: Dict[str, Optional[str]], columns: List[str]) -> List[str]:
    """Every non-empty value among the given columns (for keyword scans)"""
    found = []
    normalized = {normalize_column_name(k): v for k, v in row.items()}
    for column in columns:
        value = normalized.get(normalize_column_name(column))
        if value is not None and str(value).strip():
            found.append(str(value).strip())
    return found
