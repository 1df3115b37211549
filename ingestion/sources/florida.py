"""
Florida APL (FIS processor).

Florida policy overlays:
- Artificial dye ban from 2025-10-01 (flag column or keyword match excludes
  the product)
- Infant formula contract brand switches on 2026-02-01
- Daily syncs during the phased rollout (2025-10-01 to 2026-03-31), weekly
  otherwise
"""

from datetime import date
from typing import Optional

from ingestion.base import SourceConfig
from ingestion.extractors.apl_file_extractor import APLFileSource
from ingestion.policies.cadence import Contract, RolloutWindow
from ingestion.policies.rules import ContractBrandRule, DyeBanRule
from ingestion.transformers.field_map import FieldMap
from models.base import DataSource

STATE = "FL"

DYE_BAN_START = date(2025, 10, 1)

ROLLOUT_WINDOWS = [
    RolloutWindow(start=date(2025, 10, 1), end=date(2026, 3, 31), cadence="daily", name="phased_rollout"),
]

# Brands come from the "Contract Brand" column until the awards are published
FORMULA_CONTRACTS = [
    Contract(brand=None, start=date(2023, 2, 1), end=date(2026, 1, 31)),
    Contract(brand=None, start=date(2026, 2, 1)),
]

FIELD_MAP = FieldMap(
    upc=["UPC", "UPC Code", "UPC/PLU"],
    description=["Description", "Product Description", "Product"],
    category=["Category", "Food Category"],
    subcategory=["Subcategory", "Sub Category"],
    size=["Package Size", "Size"],
    min_size=["Min Size"],
    max_size=["Max Size"],
    participants=["Participant Types", "Eligible Participants"],
    brand=["Brand"],
    contract_brand=["Contract Brand"],
    effective_date=["Effective Date"],
    expiration_date=["Expiration Date"],
    notes=["Notes", "Remarks"],
)


def build_policies():
    return [
        DyeBanRule(start_date=DYE_BAN_START),
        ContractBrandRule(contracts=FORMULA_CONTRACTS),
    ]


def build_source(
    url: Optional[str] = None,
    local_path: Optional[str] = None,
    cron_override: Optional[str] = None,
    expected_entry_range=None,
) -> APLFileSource:
    return APLFileSource(SourceConfig(
        state=STATE,
        data_source=DataSource.FIS,
        name="florida_apl",
        priority=3,
        field_map=FIELD_MAP,
        url=url,
        local_path=local_path,
        policies=build_policies(),
        cron_override=cron_override,
        expected_entry_range=expected_entry_range,
        default_cadence="weekly",
        rollout_windows=ROLLOUT_WINDOWS,
    ))
