"""
Local filesystem storage service.

Stores uploaded DICOM objects under a root directory with SHA-256
integrity checksums. Blocking file I/O runs in the default thread pool
executor.

@module services.storage_service
"""

import asyncio
import hashlib
import re
import uuid
from functools import partial
from pathlib import Path
from typing import Union

from dicomvault.core.exceptions import NotFoundException, StorageException
from dicomvault.core.interfaces import IStorageService, StoredFile
from dicomvault.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalStorageService(IStorageService):
    """
    Filesystem-backed storage service.

    Files are written as ``<uuid>_<sanitized name>`` directly under
    ``root_dir``; the returned path is what callers persist.
    """

    def __init__(self, root_dir: Union[str, Path]):
        self._root = Path(root_dir)

    @property
    def root(self) -> Path:
        return self._root

    async def _run_sync(self, func, *args, **kwargs):
        """Run synchronous function in thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            partial(func, *args, **kwargs)
        )

    @staticmethod
    def _unique_name(file_name: str) -> str:
        base = _UNSAFE_CHARS.sub("_", Path(file_name or "upload.dcm").name) or "upload.dcm"
        return f"{uuid.uuid4().hex}_{base}"

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self._root / candidate.name

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def save(self, file_name: str, data: bytes) -> StoredFile:
        target = self._root / self._unique_name(file_name)

        try:
            await self._run_sync(self._write, target, data)
        except OSError as e:
            raise StorageException(
                message=f"Failed to store file: {str(e)}",
                details={"file_name": file_name, "path": str(target)}
            ) from e

        stored = StoredFile(
            path=str(target),
            size=len(data),
            checksum_sha256=hashlib.sha256(data).hexdigest()
        )
        logger.info(
            "File stored",
            extra={"file_name": file_name, "path": stored.path, "size": stored.size}
        )
        return stored

    async def read(self, path: str) -> bytes:
        target = self._resolve(path)

        try:
            return await self._run_sync(target.read_bytes)
        except FileNotFoundError as e:
            raise NotFoundException(
                message="Stored file not found",
                error_code="FILE_NOT_FOUND",
                details={"path": str(target)}
            ) from e
        except OSError as e:
            raise StorageException(
                message=f"Failed to read stored file: {str(e)}",
                details={"path": str(target)}
            ) from e

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        try:
            await self._run_sync(target.unlink)
        except FileNotFoundError:
            logger.debug("Stored file already absent", extra={"path": str(target)})
            return False
        except OSError as e:
            raise StorageException(
                message=f"Failed to delete stored file: {str(e)}",
                details={"path": str(target)}
            ) from e

        logger.info("Stored file deleted", extra={"path": str(target)})
        return True
