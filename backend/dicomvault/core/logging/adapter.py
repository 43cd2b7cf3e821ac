"""
Logger adapter that stamps context identifiers onto log records.
"""

import logging
from typing import Any, Dict

from dicomvault.core.logging.context import current_context


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    Adds the bound correlation, request, viewer and extraction session ids
    to each record's ``extra``. Keys passed explicitly by the caller win.

    Example:
        >>> logger = get_context_logger(__name__)
        >>> logger.info("Baseline ready", extra={"image_id": "42"})
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = {**current_context(), **(kwargs.get('extra') or {})}
        kwargs['extra'] = extra
        return msg, kwargs


def get_context_logger(name: str) -> ContextLoggerAdapter:
    return ContextLoggerAdapter(logging.getLogger(name), {})
