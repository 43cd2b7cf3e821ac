"""
File storage interface for uploaded DICOM objects.

@module core.interfaces.storage_interface
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class StoredFile:
    """Represents a stored file."""
    path: str
    size: int
    checksum_sha256: str


class IStorageService(ABC):
    """
    Interface for binary file storage.

    Implementations:
    - LocalStorageService (local filesystem)
    """

    @abstractmethod
    async def save(self, file_name: str, data: bytes) -> StoredFile:
        """
        Store a file under a unique name derived from ``file_name``.

        Args:
            file_name: Original (client) file name
            data: File content as bytes

        Returns:
            StoredFile with path, size and checksum
        """
        pass

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """
        Read a stored file.

        Raises:
            NotFoundException: If the file does not exist
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Delete a stored file.

        Returns:
            True if a file was removed, False if it did not exist
        """
        pass
