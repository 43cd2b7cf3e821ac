"""
Field normalization for resolved DICOM values.

Turns raw resolved strings into the canonical typed value of a metadata
field. Every failure path yields the type's empty sentinel (``""`` for
text fields, ``0`` for numeric fields); nothing here raises.
"""

import math
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict

from dicomvault.core.logging import get_logger
from dicomvault.utils.tag_resolver import MULTI_VALUE_DELIMITER

logger = get_logger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class FieldType(str, Enum):
    """Declared type of a metadata field."""
    STRING = "string"
    DATE = "date"
    INTEGER = "integer"
    FLOAT = "float"


def empty_value(field_type: FieldType) -> Any:
    """Return the empty sentinel for a field type."""
    if field_type == FieldType.INTEGER:
        return 0
    if field_type == FieldType.FLOAT:
        return 0.0
    return ""


def _first_component(text: str) -> str:
    # Multi-valued numerics (e.g. "40\\400") use their first value
    return text.split(MULTI_VALUE_DELIMITER, 1)[0].strip()


def normalize_string(raw: Any) -> str:
    """Trimmed pass-through."""
    if raw is None:
        return ""
    return str(raw).strip()


def normalize_date(raw: Any) -> str:
    """
    Reformat an 8-character DICOM date (YYYYMMDD) as YYYY-MM-DD.

    Any other length is returned unchanged.

    Examples:
        >>> normalize_date("20230115")
        '2023-01-15'
        >>> normalize_date("2023")
        '2023'
    """
    text = normalize_string(raw)
    if len(text) == 8:
        return f"{text[0:4]}-{text[4:6]}-{text[6:8]}"
    return text


def normalize_integer(raw: Any) -> int:
    """
    Parse an integer, accepting decimal spellings; 0 on failure.

    Values outside the signed 64-bit range of the INTEGER columns are
    treated as unparsable.
    """
    text = _first_component(normalize_string(raw))
    if not text:
        return 0
    try:
        number = int(text)
    except ValueError:
        try:
            parsed = float(text)
        except ValueError:
            return 0
        if not math.isfinite(parsed):
            return 0
        number = int(parsed)
    return number if INT64_MIN <= number <= INT64_MAX else 0


def normalize_float(raw: Any) -> float:
    """Parse a float; 0 on failure or non-finite input."""
    text = _first_component(normalize_string(raw))
    if not text:
        return 0.0
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


_NORMALIZERS: Dict[FieldType, Callable[[Any], Any]] = {
    FieldType.STRING: normalize_string,
    FieldType.DATE: normalize_date,
    FieldType.INTEGER: normalize_integer,
    FieldType.FLOAT: normalize_float,
}


def normalize(raw: Any, field_type: FieldType) -> Any:
    """
    Convert a raw resolved string into the canonical value for ``field_type``.

    Args:
        raw: Raw value text (``None`` is treated as empty)
        field_type: Declared type of the target field

    Returns:
        Typed canonical value, or the type's empty sentinel
    """
    try:
        return _NORMALIZERS[field_type](raw)
    except Exception as e:
        logger.debug(
            "Normalization fell back to empty value",
            extra={"field_type": str(field_type), "error": str(e)}
        )
        return empty_value(field_type)


def coerce_value(value: Any, field_type: FieldType) -> Any:
    """
    Coerce an already-typed value (from a stored row or JSON payload).

    Handles ``None``, numbers, and ``date``/``datetime`` objects before
    falling back to :func:`normalize` on the value's text.
    """
    if value is None:
        return empty_value(field_type)
    if field_type == FieldType.DATE and isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, bool) and field_type in (FieldType.INTEGER, FieldType.FLOAT):
        # bool is an int subclass but never a meaningful numeric value
        return empty_value(field_type)
    return normalize(str(value), field_type)
