"""
Binary codec interface.

Decodes the raw bytes of a DICOM object into an element dictionary. The
metadata core consumes that dictionary and never parses binary itself.

@module core.interfaces.codec_interface
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DicomElement:
    """One decoded data element."""
    tag: str
    vr: str
    keyword: Optional[str]
    value: Any


# Tag key (upper-case 8-hex, e.g. "0020000D") -> element
ElementDictionary = Dict[str, DicomElement]


class IBinaryCodec(ABC):
    """
    Interface for DICOM binary decoding.

    Implementations:
    - PydicomCodec (pydicom)
    """

    @abstractmethod
    async def decode(self, data: bytes) -> ElementDictionary:
        """
        Decode a DICOM object into an element dictionary.

        Args:
            data: Raw bytes of the object

        Returns:
            Mapping of tag key to element

        Raises:
            DicomParseException: If the bytes are not a readable DICOM object
        """
        pass
