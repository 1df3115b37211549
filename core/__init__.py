"""
Core utilities and configuration for the APL ingestion service.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session management
    exceptions: Exception hierarchy for ingestion error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import DownloadError, NetworkError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "DownloadError",
    "ParseError",
    "TransformationError",
    "RowTransformError",
    "ValidationError",
    "LoadError",
    "DatabaseError",
    "UpsertError",
    "SyncStatusError",
    "RunTimeoutError",
    "RetryableError",
    "NonRetryableError",
    "NetworkError",
    "DatabaseConnectionError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "DataFormatError",
]
