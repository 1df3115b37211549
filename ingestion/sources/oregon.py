"""
Oregon APL (state-built system). Carries organic-only and local-preference
flags that map onto policy flags.
"""

from typing import Optional

from ingestion.base import SourceConfig
from ingestion.extractors.apl_file_extractor import APLFileSource
from ingestion.policies.rules import OrganicLocalRule
from ingestion.transformers.field_map import FieldMap
from models.base import DataSource

STATE = "OR"

FIELD_MAP = FieldMap(
    upc=["UPC", "UPC Code", "Product UPC", "Item Number"],
    description=["Description", "Product Description", "Item Name"],
    category=["Category", "Benefit Category"],
    subcategory=["Subcategory", "Sub Category"],
    size=["Size", "Package Size", "Unit Size"],
    min_size=["Minimum Size", "Min Size"],
    max_size=["Maximum Size", "Max Size"],
    participants=["Participant Types", "Eligible For"],
    brand=["Brand", "Manufacturer"],
    effective_date=["Effective Date", "Start Date"],
    expiration_date=["Expiration Date", "Termination Date"],
    notes=["Notes", "Comments", "Remarks"],
)


def build_policies():
    return [
        OrganicLocalRule(
            organic_columns=["Organic Only", "Organic"],
            local_columns=["Local Preference", "Local"],
            local_keywords=["local", "oregon grown"],
        ),
    ]


def build_source(
    url: Optional[str] = None,
    local_path: Optional[str] = None,
    cron_override: Optional[str] = None,
    expected_entry_range=None,
) -> APLFileSource:
    return APLFileSource(SourceConfig(
        state=STATE,
        data_source=DataSource.STATE,
        name="oregon_apl",
        priority=4,
        field_map=FIELD_MAP,
        url=url,
        local_path=local_path,
        policies=build_policies(),
        cron_override=cron_override,
        expected_entry_range=expected_entry_range,
        default_cadence="daily",
    ))
