"""
APL file extractor: download (or read) a state's approved product list and
parse it into rows.

This module provides:
- HTTP download with a bounded timeout and descriptive User-Agent
- Optional basic/bearer credentials and extra headers per source
- Local file override for manual loads and tests
- Excel (.xlsx) detection by ZIP signature, delimited text otherwise
- Mapping of HTTP and parse failures onto the ingestion exception hierarchy
"""

import csv
import re
from decimal import Decimal, InvalidOperation
from io import BytesIO, StringIO
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

import httpx
import pandas as pd

from core.config import settings
from core.exceptions import (
    DownloadError,
    NetworkError,
    AuthenticationError,
    ResourceNotFoundError,
    DataFormatError,
)
from ingestion.base import SourceAdapter, SourceConfig
import logging

logger = logging.getLogger(__name__)

XLSX_SIGNATURE = b"PK"

_FLOAT_INTEGER = re.compile(r"^-?\d+\.0+$")
_SCIENTIFIC = re.compile(r"^-?\d+(\.\d+)?[eE]\+?\d+$")


def _clean_cell(value: Any) -> Optional[str]:
    """Cell text with spreadsheet float artifacts removed; blanks become None"""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    # Numeric UPC cells come back as "41220576081.0" or "4.1220576081E+10"
    if _FLOAT_INTEGER.match(text):
        return text.split(".")[0]
    if _SCIENTIFIC.match(text):
        try:
            return str(int(Decimal(text)))
        except (InvalidOperation, ValueError):
            return text
    return text


def detect_format(payload: bytes) -> str:
    return "xlsx" if payload[:2] == XLSX_SIGNATURE else "csv"


def _decode(payload: bytes) -> str:
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Payload is not UTF-8, falling back to latin-1")
        return payload.decode("latin-1")


def _read_delimited(text: str) -> pd.DataFrame:
    try:
        return pd.read_csv(
            StringIO(text),
            sep=None,
            engine="python",
            dtype=str,
            keep_default_na=False,
        )
    except (csv.Error, pd.errors.ParserError):
        # Sniffer gives up on single-column files
        return pd.read_csv(StringIO(text), dtype=str, keep_default_na=False)


def parse_apl_payload(payload: bytes, state: str = "") -> Tuple[str, List[Dict[str, Optional[str]]]]:
    """
    Parse raw APL bytes into rows keyed by the original (trimmed) column names.

    Raises:
        DataFormatError: empty payload, unreadable file, or no data rows
    """
    if not payload or not payload.strip():
        raise DataFormatError(
            "APL file is empty",
            context={"state": state, "size_bytes": len(payload or b"")}
        )

    file_format = detect_format(payload)

    try:
        if file_format == "xlsx":
            df = pd.read_excel(BytesIO(payload), dtype=str, engine="openpyxl")
        else:
            df = _read_delimited(_decode(payload))
    except Exception as e:
        raise DataFormatError(
            f"Unable to parse APL file as {file_format}",
            context={"state": state, "file_format": file_format, "size_bytes": len(payload)},
            original_exception=e
        )

    df.columns = [str(c).strip() for c in df.columns]

    rows: List[Dict[str, Optional[str]]] = []
    for record in df.to_dict(orient="records"):
        cleaned = {column: _clean_cell(value) for column, value in record.items()}
        if any(v is not None for v in cleaned.values()):
            rows.append(cleaned)

    if not rows:
        raise DataFormatError(
            "APL file contains no data rows",
            context={"state": state, "file_format": file_format, "columns": list(df.columns)}
        )

    return file_format, rows


class APLFileSource(SourceAdapter):
    """
    Source adapter for states that publish their APL as a downloadable
    spreadsheet or delimited file.

    Attributes:
        timeout: Download timeout in seconds (default: DOWNLOAD_TIMEOUT_SECONDS)
    """

    def __init__(self, config: SourceConfig, timeout: Optional[float] = None):
        super().__init__(config)
        self.timeout = timeout or settings.DOWNLOAD_TIMEOUT_SECONDS

    def _request_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": settings.USER_AGENT,
            "Accept": "*/*",
        }
        headers.update(self.config.headers)
        if self.config.bearer_token:
            headers["Authorization"] = f"Bearer {self.config.bearer_token}"
        return headers

    async def fetch_bytes(self) -> bytes:
        if self.config.local_path:
            return self._read_local(self.config.local_path)

        if not self.config.url:
            raise ResourceNotFoundError(
                f"No URL or local path configured for {self.source_name}",
                context={"state": self.state, "source_name": self.source_name}
            )

        return await self._download(self.config.url)

    def _read_local(self, local_path: str) -> bytes:
        path = Path(local_path)
        if not path.is_file():
            raise ResourceNotFoundError(
                f"APL file not found: {path}",
                context={"state": self.state, "file_path": str(path)}
            )
        logger.info(f"Reading {self.source_name} APL from {path}")
        return path.read_bytes()

    async def _download(self, url: str) -> bytes:
        context = {"state": self.state, "source_name": self.source_name, "url": url}
        logger.info(f"Downloading {self.source_name} APL from {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(
                    url,
                    headers=self._request_headers(),
                    auth=self.config.auth,
                )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Download timed out after {self.timeout}s",
                context={**context, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network error downloading {url}",
                context=context,
                original_exception=e
            )

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {url}",
                context={**context, "status_code": status}
            )
        if status == 404:
            raise ResourceNotFoundError(
                f"APL file not found: {url}",
                context={**context, "status_code": 404}
            )
        if status == 429 or status >= 500:
            raise NetworkError(
                f"Server error {status} downloading {url}",
                context={**context, "status_code": status, "response_body": response.text[:500]}
            )
        if status >= 400:
            raise DownloadError(
                f"Unexpected HTTP status {status} downloading {url}",
                context={**context, "status_code": status}
            )

        logger.info(f"Downloaded {len(response.content)} bytes for {self.source_name}")
        return response.content

    def parse(self, payload: bytes) -> Tuple[str, List[Dict[str, Optional[str]]]]:
        return parse_apl_payload(payload, state=self.state)
