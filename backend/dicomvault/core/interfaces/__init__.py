"""
Service interfaces for dependency injection.

This package defines abstract interfaces for the external collaborators
of the metadata core, enabling loose coupling and testability through
dependency injection.
"""

from dicomvault.core.interfaces.codec_interface import (
    DicomElement,
    ElementDictionary,
    IBinaryCodec,
)
from dicomvault.core.interfaces.metadata_gateway_interface import IMetadataGateway
from dicomvault.core.interfaces.storage_interface import IStorageService, StoredFile

__all__ = [
    "DicomElement",
    "ElementDictionary",
    "IBinaryCodec",
    "IMetadataGateway",
    "IStorageService",
    "StoredFile",
]
