"""
Shared utilities.

Tag resolution and field normalization for DICOM metadata, plus DICOM
dataset helpers.
"""

from dicomvault.utils.tag_resolver import (
    MULTI_VALUE_DELIMITER,
    TAG_PREFIX,
    candidate_keys,
    element_value,
    resolve_tag,
    tag_spellings,
    value_to_text,
)
from dicomvault.utils.normalizers import (
    FieldType,
    coerce_value,
    empty_value,
    normalize,
    normalize_date,
    normalize_float,
    normalize_integer,
    normalize_string,
)

__all__ = [
    # Tag resolution
    "MULTI_VALUE_DELIMITER",
    "TAG_PREFIX",
    "candidate_keys",
    "element_value",
    "resolve_tag",
    "tag_spellings",
    "value_to_text",
    # Normalization
    "FieldType",
    "coerce_value",
    "empty_value",
    "normalize",
    "normalize_date",
    "normalize_float",
    "normalize_integer",
    "normalize_string",
]
