"""
pydicom-backed binary codec.

Decodes uploaded or stored DICOM bytes into the element dictionary consumed
by the metadata core. Parsing is blocking and runs in the default thread
pool executor.
"""

import asyncio
from functools import partial
from io import BytesIO

import pydicom

from dicomvault.core.exceptions import DicomParseException
from dicomvault.core.interfaces import ElementDictionary, IBinaryCodec
from dicomvault.core.logging import get_logger
from dicomvault.utils.dicom_utils import dataset_to_elements

logger = get_logger(__name__)


class PydicomCodec(IBinaryCodec):
    """Decodes DICOM objects with pydicom, skipping pixel data."""

    async def _run_sync(self, func, *args, **kwargs):
        """Run synchronous function in thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            partial(func, *args, **kwargs)
        )

    def _decode_sync(self, data: bytes) -> ElementDictionary:
        dataset = pydicom.dcmread(BytesIO(data), force=True, stop_before_pixels=True)
        return dataset_to_elements(dataset)

    async def decode(self, data: bytes) -> ElementDictionary:
        if not data:
            raise DicomParseException(
                message="Cannot decode empty DICOM object",
                details={"size": 0}
            )

        try:
            elements = await self._run_sync(self._decode_sync, data)
        except Exception as e:
            raise DicomParseException(
                message=f"Failed to parse DICOM data: {str(e)}",
                details={"size": len(data), "error_type": type(e).__name__}
            ) from e

        if not elements:
            raise DicomParseException(
                message="DICOM object contains no readable data elements",
                details={"size": len(data)}
            )

        logger.debug(
            "Decoded DICOM object",
            extra={"size": len(data), "element_count": len(elements)}
        )
        return elements
