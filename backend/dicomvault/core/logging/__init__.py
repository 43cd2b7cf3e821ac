"""
Logging module for DICOM Vault.

Provides structured logging with JSON formatting, correlation IDs,
and context-aware logging.

Usage:
    >>> from dicomvault.core.logging import setup_logging, get_logger
    >>>
    >>> # Initialize logging (call once at app startup)
    >>> setup_logging()
    >>>
    >>> # Get logger in your module
    >>> logger = get_logger(__name__)
    >>>
    >>> # Log with context
    >>> logger.info("Metadata reconciled", extra={"image_id": "42"})
"""

from dicomvault.core.logging.config import setup_logging, get_logger
from dicomvault.core.logging.adapter import get_context_logger
from dicomvault.core.logging.context import (
    bind_request_context,
    current_context,
    generate_correlation_id,
    generate_request_id,
    get_correlation_id,
    get_request_id,
    get_session_id,
    get_viewer_id,
    reset_request_context,
    set_session_id,
)

__all__ = [
    # Configuration
    "setup_logging",
    "get_logger",
    "get_context_logger",

    # Context management
    "bind_request_context",
    "current_context",
    "generate_correlation_id",
    "generate_request_id",
    "get_correlation_id",
    "get_request_id",
    "get_session_id",
    "get_viewer_id",
    "reset_request_context",
    "set_session_id",
]
