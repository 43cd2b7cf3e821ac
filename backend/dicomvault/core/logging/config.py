"""
Logging configuration module.

Provides structured logging with JSON formatting, correlation IDs,
and proper log levels for the DICOM Vault service.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional
from pythonjsonlogger import jsonlogger

from dicomvault.core.config import get_settings
from dicomvault.core.logging.context import current_context


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that adds service context to log records.

    Automatically includes:
    - Timestamp
    - Log level
    - Logger name
    - File/line information
    - Correlation, request, viewer and extraction session IDs (if bound)
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict):
        """Add custom fields to the log record."""
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = self.formatTime(record, self.datefmt)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name

        log_record['file'] = record.pathname
        log_record['line'] = record.lineno
        log_record['function'] = record.funcName

        # Plain (non-adapter) loggers still get the bound ids
        for name, value in current_context().items():
            log_record.setdefault(name, value)


class TextFormatter(logging.Formatter):
    """
    Human-readable text formatter for development.

    Format: [TIMESTAMP] [LEVEL] [MODULE:LINE] - MESSAGE
    """

    def __init__(self):
        super().__init__(
            fmt='[%(asctime)s] [%(levelname)-8s] [%(name)s:%(lineno)d] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type ("json" or "text")
        log_file: Path to log file; an empty value disables file output

    Example:
        >>> setup_logging(log_level="INFO", log_format="json", log_file="logs/app.log")
    """
    settings = get_settings()

    level = log_level or settings.LOG_LEVEL
    format_type = log_format or settings.LOG_FORMAT
    file_path = settings.LOG_FILE if log_file is None else log_file

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_type.lower() == "json":
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s'
        )
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        log_path = Path(file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("fastapi").setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("pydicom").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging initialized",
        extra={
            "log_level": level,
            "log_format": format_type,
            "log_file": file_path or None
        }
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Name of the logger (typically __name__)

    Returns:
        Configured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Metadata persisted", extra={"image_id": "42"})
    """
    return logging.getLogger(name)
