"""
Tag resolution over parsed DICOM element dictionaries.

Element dictionaries come from different producers and disagree on how a
tag key is spelled: pydicom-style ``"0020000D"``, browser parsers'
``"x0020000d"``, DICOM JSON's upper-case hex, or plain keywords such as
``"StudyInstanceUID"``. Element payloads differ as well: objects exposing
``.value``, DICOM JSON mappings with a ``"Value"`` list, or bare scalars.

:func:`resolve_tag` hides those differences behind one rule: try each key
spelling in order and return the first non-empty value as text.
"""

import re
import string
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List, Optional

from dicomvault.core.logging import get_logger

logger = get_logger(__name__)

TAG_PREFIX = "x"
MULTI_VALUE_DELIMITER = "\\"

_ENCLOSING_PUNCTUATION = re.compile(r"[()\[\]{},\s]")
_PADDING = " \x00"
# Values made only of these characters count as empty
_BLANK = string.whitespace + "\x00"


def tag_spellings(tag: str) -> List[str]:
    """
    Return the key spellings tried for a canonical tag, in lookup order.

    Args:
        tag: Canonical tag, e.g. ``"0020000D"``

    Returns:
        Bare tag, marker-prefixed tag, lower-cased, upper-cased and
        punctuation-stripped forms

    Examples:
        >>> tag_spellings("0020000D")
        ['0020000D', 'x0020000D', '0020000d', '0020000D', '0020000D']
    """
    return [
        tag,
        f"{TAG_PREFIX}{tag}",
        tag.lower(),
        tag.upper(),
        _ENCLOSING_PUNCTUATION.sub("", tag),
    ]


def candidate_keys(tag: Optional[str], keywords: Iterable[str] = ()) -> List[str]:
    """
    Build the ordered, de-duplicated key list for one logical field.

    Tag spellings come first; keyword aliases are the final fallback.
    Dropping repeated spellings does not change which key wins.

    Examples:
        >>> candidate_keys("00100010", ["PatientName"])
        ['00100010', 'x00100010', 'PatientName']
    """
    keys: List[str] = []
    if tag:
        keys.extend(tag_spellings(tag))
    keys.extend(keywords)

    seen = set()
    ordered = []
    for key in keys:
        if key and key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered


def element_value(element: Any) -> Any:
    """Extract the raw value carried by an element, whatever its shape."""
    if element is None:
        return None
    if isinstance(element, Mapping):
        # DICOM JSON model uses "Value"; simplified producers use "value"
        for key in ("value", "Value"):
            if key in element:
                return element[key]
        return None
    if hasattr(element, "value"):
        return element.value
    return element


def value_to_text(value: Any) -> str:
    """
    Render a raw element value as a single string.

    Sequences (multi-valued elements) are joined with a backslash, the
    DICOM value delimiter. DICOM JSON person names use their alphabetic
    component.

    Examples:
        >>> value_to_text(["ORIGINAL", "PRIMARY", "AXIAL"])
        'ORIGINAL\\\\PRIMARY\\\\AXIAL'
        >>> value_to_text({"Alphabetic": "Doe^Jane"})
        'Doe^Jane'
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1").strip(_PADDING)
    if isinstance(value, Mapping):
        return value_to_text(value.get("Alphabetic"))
    if isinstance(value, Sequence):
        return MULTI_VALUE_DELIMITER.join(value_to_text(item) for item in value)
    return str(value)


def _lookup(elements: Any, key: str) -> Any:
    getter = getattr(elements, "get", None)
    if getter is not None:
        return getter(key)
    try:
        return elements[key]
    except KeyError:
        return None


def resolve_tag(elements: Any, keys: Iterable[str]) -> str:
    """
    Resolve one logical field from an element dictionary.

    Each key spelling is tried in order; the first one that yields a
    present, non-empty value wins. A failing lookup only disqualifies that
    spelling. Absence of data is reported as an empty string; this
    function never raises.

    Args:
        elements: Mapping of tag key to element (may be None)
        keys: Ordered key spellings, see :func:`candidate_keys`

    Returns:
        Raw (untrimmed) value text, or ``""`` when nothing resolves
    """
    if elements is None:
        return ""

    for key in keys:
        try:
            text = value_to_text(element_value(_lookup(elements, key)))
        except Exception as e:
            logger.debug(
                "Tag lookup failed for key spelling",
                extra={"tag_key": key, "error": str(e), "error_type": type(e).__name__}
            )
            continue

        if text.strip(_BLANK):
            return text

    return ""
