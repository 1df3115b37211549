"""
Michigan APL (FIS processor). Published as an Excel workbook.
"""

from typing import Optional

from ingestion.base import SourceConfig
from ingestion.extractors.apl_file_extractor import APLFileSource
from ingestion.transformers.field_map import FieldMap
from models.base import DataSource

STATE = "MI"

FIELD_MAP = FieldMap(
    upc=["UPC", "upc", "UPC Code", "UPC/PLU"],
    description=["Product Description", "Description", "Product"],
    category=["Category", "category"],
    subcategory=["Subcategory", "subcategory"],
    size=["Package Size", "Size"],
    min_size=["Min Size"],
    max_size=["Max Size"],
    participants=["Participant Types"],
    brand=["Brand"],
    effective_date=["Effective Date"],
    expiration_date=["Expiration Date"],
    notes=["Notes", "notes"],
)


def build_source(
    url: Optional[str] = None,
    local_path: Optional[str] = None,
    cron_override: Optional[str] = None,
    expected_entry_range=None,
) -> APLFileSource:
    return APLFileSource(SourceConfig(
        state=STATE,
        data_source=DataSource.FIS,
        name="michigan_apl",
        priority=1,
        field_map=FIELD_MAP,
        url=url,
        local_path=local_path,
        cron_override=cron_override,
        expected_entry_range=expected_entry_range,
        default_cadence="daily",
    ))
