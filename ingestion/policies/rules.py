"""
State policy overlays applied after generic transformation and before
validation.

A rule receives the canonical entry, the raw row it came from, the run's
stats and the as-of date. It returns the (possibly modified) entry, or None
to exclude the entry from the run.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, List, Optional, Sequence
import re
import logging

from ingestion.policies.cadence import Contract, current_contract
from ingestion.transformers.field_map import first_present, values_of
from schemas.apl import APLEntryCreate, BrandRestriction, PolicyFlag
from schemas.ingestion import IngestionStats

logger = logging.getLogger(__name__)

TRUTHY_VALUES = frozenset({"yes", "y", "true", "1", "x"})

DEFAULT_DYE_KEYWORDS = (
    "red 40",
    "red 3",
    "yellow 5",
    "yellow 6",
    "blue 1",
    "blue 2",
    "green 3",
    "artificial color",
    "artificial dye",
    "fd&c",
    "lake dye",
)

DEFAULT_TEXT_COLUMNS = ("Description", "Product Description", "Product", "Item Description", "Item Name")
DEFAULT_NOTES_COLUMNS = ("Notes", "Remarks", "Comments")


def is_truthy(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in TRUTHY_VALUES


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern:
    # "red 40" also matches "Red40" and "red  40"
    parts = [r"\s*".join(re.escape(word) for word in k.split()) for k in keywords]
    return re.compile(r"(?<![a-z0-9])(?:" + "|".join(parts) + r")(?![0-9])", re.IGNORECASE)


class PolicyRule(ABC):
    """Base class for state policy rules"""

    name = "policy"

    @abstractmethod
    def apply(
        self,
        entry: APLEntryCreate,
        row: Dict[str, Optional[str]],
        stats: IngestionStats,
        as_of: date
    ) -> Optional[APLEntryCreate]:
        pass


class DyeBanRule(PolicyRule):
    """
    Exclude products containing banned artificial dyes once the ban is in
    force. Matches either an explicit flag column or dye keywords in the
    description and notes columns. Remaining entries carry the
    no-artificial-dyes flag.
    """

    name = "dye_ban"

    def __init__(
        self,
        start_date: date,
        keywords: Sequence[str] = DEFAULT_DYE_KEYWORDS,
        text_columns: Sequence[str] = DEFAULT_TEXT_COLUMNS + DEFAULT_NOTES_COLUMNS,
        flag_columns: Sequence[str] = ("Artificial Dyes",),
    ):
        self.start_date = start_date
        self.keywords = tuple(keywords)
        self.text_columns = list(text_columns)
        self.flag_columns = list(flag_columns)
        self._pattern = _keyword_pattern(self.keywords)

    def is_active(self, as_of: date) -> bool:
        return as_of >= self.start_date

    def contains_dyes(self, row: Dict[str, Optional[str]]) -> bool:
        if is_truthy(first_present(row, self.flag_columns)):
            return True
        return any(self._pattern.search(text) for text in values_of(row, self.text_columns))

    def apply(self, entry, row, stats, as_of):
        if not self.is_active(as_of):
            return entry

        if self.contains_dyes(row):
            stats.rejected_artificial_dyes += 1
            logger.debug(f"{entry.state} {entry.upc}: excluded by artificial dye ban")
            return None

        entry.restrictions().add_flag(PolicyFlag.NO_ARTIFICIAL_DYES)
        return entry


class ContractBrandRule(PolicyRule):
    """
    Attach the infant formula contract brand in force on the as-of date to
    formula entries. A contract brand the row already carries (the source's
    contract-brand column) wins over the configured one; it counts as a
    contract change only when it names a different brand.
    """

    name = "contract_brand"

    def __init__(
        self,
        contracts: List[Contract],
        category_keywords: Sequence[str] = ("formula",),
    ):
        self.contracts = list(contracts)
        self.category_keywords = [k.lower() for k in category_keywords]

    def applies_to(self, entry: APLEntryCreate) -> bool:
        category = (entry.benefit_category or "").lower()
        return any(k in category for k in self.category_keywords)

    def apply(self, entry, row, stats, as_of):
        if not self.applies_to(entry):
            return entry

        contract = current_contract(as_of, self.contracts)
        configured = contract.brand if contract else None
        explicit = entry.brand_restriction.contract_brand if entry.brand_restriction else None

        if explicit:
            brand = explicit
            if (configured or "").strip().lower() != explicit.strip().lower():
                stats.contract_formula_changes += 1
        elif contract is not None and contract.brand:
            brand = contract.brand
        else:
            return entry

        entry.brand_restriction = BrandRestriction(
            contract_brand=brand,
            contract_start_date=contract.start if contract else None,
            contract_end_date=contract.end if contract else None,
        )
        return entry


class OrganicLocalRule(PolicyRule):
    """
    Set organic-required and local-preferred flags from explicit flag columns
    or from keywords in the description and notes.
    """

    name = "organic_local"

    def __init__(
        self,
        organic_columns: Sequence[str] = ("Organic Only",),
        local_columns: Sequence[str] = ("Local Preference",),
        description_columns: Sequence[str] = DEFAULT_TEXT_COLUMNS,
        notes_columns: Sequence[str] = DEFAULT_NOTES_COLUMNS,
        organic_keywords: Sequence[str] = ("organic only",),
        local_keywords: Sequence[str] = ("local",),
    ):
        self.organic_columns = list(organic_columns)
        self.local_columns = list(local_columns)
        self.description_columns = list(description_columns)
        self.notes_columns = list(notes_columns)
        self.organic_keywords = [k.lower() for k in organic_keywords]
        self.local_keywords = [k.lower() for k in local_keywords]

    def _mentions(self, row, columns, keywords) -> bool:
        texts = [t.lower() for t in values_of(row, columns)]
        return any(k in t for t in texts for k in keywords)

    def apply(self, entry, row, stats, as_of):
        organic = is_truthy(first_present(row, self.organic_columns)) or self._mentions(
            row, self.description_columns, self.organic_keywords
        )
        local = is_truthy(first_present(row, self.local_columns)) or self._mentions(
            row, self.notes_columns, self.local_keywords
        )

        if organic:
            entry.restrictions().add_flag(PolicyFlag.ORGANIC_REQUIRED)
            stats.organic_products += 1
        if local:
            entry.restrictions().add_flag(PolicyFlag.LOCAL_PREFERRED)
            stats.local_products += 1
        return entry


def apply_policies(
    rules: Sequence[PolicyRule],
    entry: APLEntryCreate,
    row: Dict[str, Optional[str]],
    stats: IngestionStats,
    as_of: date
) -> Optional[APLEntryCreate]:
    """Run rules in order; the first rule that excludes the entry stops the chain"""
    for rule in rules:
        entry = rule.apply(entry, row, stats, as_of)
        if entry is None:
            return None
    return entry
