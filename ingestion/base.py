"""
Abstract base class for APL sources
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import List, Dict, Any, Optional, Tuple
import hashlib
import logging

from models.base import DataSource
from ingestion.policies.cadence import RolloutWindow, recommended_cadence, cadence_to_cron
from ingestion.transformers.field_map import FieldMap

logger = logging.getLogger(__name__)


@dataclass
class ExtractResult:
    """Raw payload of one source plus its parsed rows"""
    payload: bytes
    file_hash: str
    file_format: str
    rows: List[Dict[str, Optional[str]]]

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class SourceConfig:
    """Declarative description of one state feed"""
    state: str
    data_source: DataSource
    name: str
    field_map: FieldMap
    url: Optional[str] = None
    local_path: Optional[str] = None
    # Extra request headers (API keys, cookies) and basic-auth credentials
    headers: Dict[str, str] = field(default_factory=dict)
    auth: Optional[Tuple[str, str]] = None
    bearer_token: Optional[str] = None
    policies: List[Any] = field(default_factory=list)
    expected_entry_range: Optional[Tuple[int, int]] = None
    cron_override: Optional[str] = None
    default_cadence: str = "daily"
    rollout_windows: List[RolloutWindow] = field(default_factory=list)
    # Lower runs first when every source is synced together
    priority: int = 5


def compute_file_hash(payload: bytes) -> str:
    """SHA-256 hex digest of a raw file"""
    return hashlib.sha256(payload).hexdigest()


class SourceAdapter(ABC):
    """
    Abstract base class for all APL sources.

    Responsibilities:
    - Obtain the raw bytes of the state's list (download or local file)
    - Parse them into rows keyed by the original column names
    - Expose the declarative field map, policies and schedule of the feed
    """

    def __init__(self, config: SourceConfig):
        self.config = config

    @property
    def state(self) -> str:
        return self.config.state

    @property
    def data_source(self) -> DataSource:
        return self.config.data_source

    @property
    def source_name(self) -> str:
        return self.config.name

    @property
    def field_map(self) -> FieldMap:
        return self.config.field_map

    @property
    def policies(self) -> List[Any]:
        return self.config.policies

    @property
    def priority(self) -> int:
        return self.config.priority

    @abstractmethod
    async def fetch_bytes(self) -> bytes:
        """Return the raw file content"""
        pass

    @abstractmethod
    def parse(self, payload: bytes) -> Tuple[str, List[Dict[str, Optional[str]]]]:
        """
        Parse raw bytes.

        Returns:
            Tuple of detected file format and rows (column name -> cell text)
        """
        pass

    async def extract(self) -> ExtractResult:
        """Fetch and parse; the hash is taken over the raw bytes"""
        payload = await self.fetch_bytes()
        file_hash = compute_file_hash(payload)
        file_format, rows = self.parse(payload)

        logger.info(
            f"Extracted {len(rows)} rows from {self.source_name} "
            f"({file_format}, {len(payload)} bytes, hash {file_hash[:12]})"
        )
        return ExtractResult(
            payload=payload,
            file_hash=file_hash,
            file_format=file_format,
            rows=rows,
        )

    def cron_expression(self, as_of: Optional[date] = None) -> str:
        """Explicit override, or the cadence the feed's rollout calendar asks for"""
        if self.config.cron_override:
            return self.config.cron_override
        cadence = recommended_cadence(
            as_of or date.today(),
            self.config.rollout_windows,
            default=self.config.default_cadence,
        )
        return cadence_to_cron(cadence)
