"""
North Carolina APL (Conduent processor). Conduent exports use their own
column names and abbreviate participant categories (PREG, PP, BF, INF).
"""

from typing import Optional

from ingestion.base import SourceConfig
from ingestion.extractors.apl_file_extractor import APLFileSource
from ingestion.transformers.field_map import FieldMap, DEFAULT_PARTICIPANT_ALIASES
from models.base import DataSource

STATE = "NC"

PARTICIPANT_ALIASES = {
    **DEFAULT_PARTICIPANT_ALIASES,
    "preg": "pregnant",
    "pp": "postpartum",
    "bf": "breastfeeding",
    "inf": "infant",
    "chld": "child",
}

FIELD_MAP = FieldMap(
    upc=["UPC/PLU", "UPC", "UPC Code"],
    description=["Item Description", "Product Name", "Description"],
    category=["Food Category", "Category"],
    subcategory=["Sub Category", "Subcategory"],
    size=["Container Size", "Package Size", "Size"],
    unit=["Unit of Measure", "UOM"],
    participants=["Eligible Participants", "Participant Category"],
    brand=["Brand", "Brand Name"],
    effective_date=["Begin Date", "Effective Date"],
    expiration_date=["End Date", "Expiration Date"],
    notes=["Notes", "Remarks"],
    participant_aliases=PARTICIPANT_ALIASES,
)


def build_source(
    url: Optional[str] = None,
    local_path: Optional[str] = None,
    cron_override: Optional[str] = None,
    expected_entry_range=None,
) -> APLFileSource:
    return APLFileSource(SourceConfig(
        state=STATE,
        data_source=DataSource.CONDUENT,
        name="north_carolina_apl",
        priority=2,
        field_map=FIELD_MAP,
        url=url,
        local_path=local_path,
        cron_override=cron_override,
        expected_entry_range=expected_entry_range,
        default_cadence="daily",
    ))
