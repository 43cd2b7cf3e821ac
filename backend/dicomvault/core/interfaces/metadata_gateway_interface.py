"""
Persistence gateway interface for metadata records.

@module core.interfaces.metadata_gateway_interface
"""

from abc import ABC, abstractmethod

from dicomvault.models.metadata import MetadataRecord


class IMetadataGateway(ABC):
    """
    Interface for reading and writing the persisted metadata of an image.

    Implementations:
    - DicomDataRepository (SQLAlchemy)
    """

    @abstractmethod
    async def get(self, image_id: str) -> MetadataRecord:
        """
        Fetch the persisted record for an image.

        Args:
            image_id: Image identifier

        Returns:
            Stored record, or an all-empty record when nothing is stored
        """
        pass

    @abstractmethod
    async def put(self, image_id: str, record: MetadataRecord) -> bool:
        """
        Persist a record for an image.

        Args:
            image_id: Image identifier
            record: Record to store

        Returns:
            True if stored, False if the image does not exist
        """
        pass
