"""
Custom exceptions for the APL ingestion pipeline with structured error context.

Every exception carries a context dictionary (state, data source, URL, row
number, ...) so failures can be logged and stored on the sync status row
without losing the details needed for debugging.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError
    │   ├── DownloadError
    │   └── ParseError
    ├── TransformationError
    │   ├── RowTransformError
    │   └── ValidationError
    ├── LoadError
    │   ├── DatabaseError
    │   └── UpsertError
    ├── SyncStatusError
    ├── RunTimeoutError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (state, source, row, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for obtaining or reading a source file."""
    pass


class DownloadError(ExtractionError):
    """
    Raised when the APL file cannot be downloaded.

    Context should include:
        - state: Two-letter state code
        - url: The URL that failed
        - status_code: HTTP status code (if applicable)
    """
    pass


class ParseError(ExtractionError):
    """
    Raised when the downloaded bytes cannot be read as a spreadsheet or
    delimited file, or when the file contains no rows.

    Context should include:
        - state: Two-letter state code
        - file_format: "xlsx" or "csv"
        - size_bytes: Size of the payload
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for row transformation failures."""
    pass


class RowTransformError(TransformationError):
    """
    Row-level failure (bad date, unusable value). The row is skipped and
    counted; the run continues.

    Context should include:
        - row_number: 1-based data row number
        - field_name: Logical field that failed
        - field_value: Raw value
    """
    pass


class ValidationError(TransformationError):
    """
    Raised when a canonical entry fails structural validation.

    Context should include:
        - entry_id: Deterministic entry id
        - errors: List of validation error messages
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for persistence failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, UPSERT, COMMIT)
        - table_name: Name of the table
    """
    pass


class UpsertError(LoadError):
    """
    Exception raised when an entry upsert fails. The whole run is rolled back.

    Context should include:
        - entry_id: ID of the entry being upserted
        - batch_index: Index in the batch
    """
    pass


# ============================================================================
# Sync Status Errors
# ============================================================================

class SyncStatusError(ETLException):
    """
    Exception raised when the sync status row cannot be read or written.

    Context should include:
        - state: Two-letter state code
        - data_source: Processor (fis, conduent, ...)
        - operation: read, write
    """
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Service unavailable (HTTP 5xx)
    - Temporary database connection issues
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(ETLException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    - Unreadable file format
    """
    pass


# ============================================================================
# Specific Retryable Errors
# ============================================================================

class NetworkError(RetryableError, DownloadError):
    """Network-related errors that should be retried."""
    pass


class DatabaseConnectionError(RetryableError, DatabaseError):
    """Database connection errors that should be retried."""
    pass


class RunTimeoutError(RetryableError):
    """A sync run exceeded its overall time limit."""
    pass


# ============================================================================
# Specific Non-Retryable Errors
# ============================================================================

class AuthenticationError(NonRetryableError, DownloadError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, DownloadError):
    """Resource not found errors (HTTP 404, missing local file) that should not be retried."""
    pass


class DataFormatError(NonRetryableError, ParseError):
    """Data format errors that should not be retried."""
    pass
