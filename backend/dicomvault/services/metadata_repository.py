"""
DICOM data repository.

SQLAlchemy-backed persistence for uploaded DICOM objects. Implements the
metadata persistence gateway (``get``/``put``) used by the extraction
orchestrator, plus the image CRUD used by the application service.

@module services.metadata_repository
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dicomvault.core.database import session_scope
from dicomvault.core.exceptions import DatabaseException
from dicomvault.core.interfaces import IMetadataGateway
from dicomvault.core.logging import get_logger
from dicomvault.models.database import DicomData
from dicomvault.models.metadata import FIELD_TABLE, MetadataRecord
from dicomvault.utils.normalizers import coerce_value

logger = get_logger(__name__)

# Driver errors such as OverflowError are not wrapped by SQLAlchemy
_DB_ERRORS = (SQLAlchemyError, OverflowError)

# Metadata field -> column, where the names differ
_COLUMN_FOR_FIELD: Dict[str, str] = {"image_id": "image_ref"}


def _column_name(field_name: str) -> str:
    return _COLUMN_FOR_FIELD.get(field_name, field_name)


def record_from_row(row: DicomData) -> MetadataRecord:
    """Read the metadata record stored on a row; NULL columns become sentinels."""
    values = {
        spec.name: coerce_value(getattr(row, _column_name(spec.name)), spec.field_type)
        for spec in FIELD_TABLE
    }
    return MetadataRecord(**values)


def apply_record(row: DicomData, record: MetadataRecord) -> None:
    """
    Write every metadata field of ``record`` onto ``row``; sentinels become NULL.

    Records are already fitted to the column widths on construction.
    """
    for spec in FIELD_TABLE:
        value: Any = None if record.is_field_empty(spec.name) else record.value_of(spec.name)
        setattr(row, _column_name(spec.name), value)


class DicomDataRepository(IMetadataGateway):
    """
    Repository for the ``dicom_data`` table.

    Every method runs in its own transactional session, so one repository
    instance is shared by requests and extraction sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize repository.

        Args:
            session_factory: Async session factory
        """
        self._session_factory = session_factory

    @staticmethod
    def _parse_id(image_id: Any) -> Optional[int]:
        try:
            parsed = int(str(image_id).strip())
        except (TypeError, ValueError):
            return None
        return parsed if parsed > 0 else None

    @staticmethod
    def _database_error(operation: str, image_id: Any, error: Exception) -> DatabaseException:
        return DatabaseException(
            message=f"Database {operation} failed",
            details={"image_id": str(image_id), "error": str(error)}
        )

    async def _load(self, db: AsyncSession, row_id: int) -> Optional[DicomData]:
        result = await db.execute(select(DicomData).where(DicomData.id == row_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Persistence gateway
    # ------------------------------------------------------------------

    async def get(self, image_id: str) -> MetadataRecord:
        row = await self.get_image(image_id)
        if row is None:
            logger.debug("No stored metadata for image", extra={"image_id": str(image_id)})
            return MetadataRecord.empty()
        return record_from_row(row)

    async def put(self, image_id: str, record: MetadataRecord) -> bool:
        return await self.replace_metadata(image_id, record) is not None

    # ------------------------------------------------------------------
    # Image CRUD
    # ------------------------------------------------------------------

    async def create_image(
        self,
        file_name: str,
        file_size: Optional[int] = None,
        storage_path: Optional[str] = None,
        content_type: Optional[str] = None,
        checksum_sha256: Optional[str] = None,
        record: Optional[MetadataRecord] = None
    ) -> DicomData:
        """
        Insert a new image row, optionally seeded with a metadata record.

        Returns:
            The created row (with its generated id)
        """
        row = DicomData(
            file_name=file_name[:255],
            file_size=file_size,
            storage_path=storage_path,
            content_type=content_type,
            checksum_sha256=checksum_sha256,
            has_annotations=False,
        )
        apply_record(row, record or MetadataRecord.empty())

        try:
            async with session_scope(self._session_factory) as db:
                db.add(row)
                await db.flush()
                await db.refresh(row)
        except _DB_ERRORS as e:
            raise self._database_error("insert", file_name, e) from e

        logger.info(
            "Image row created",
            extra={"image_id": row.id, "file_name": row.file_name, "file_size": file_size}
        )
        return row

    async def get_image(self, image_id: Any) -> Optional[DicomData]:
        """Fetch one row; None for unknown or malformed ids."""
        row_id = self._parse_id(image_id)
        if row_id is None:
            return None

        try:
            async with session_scope(self._session_factory) as db:
                return await self._load(db, row_id)
        except _DB_ERRORS as e:
            raise self._database_error("read", image_id, e) from e

    async def list_images(self) -> List[DicomData]:
        """All rows, newest upload first."""
        try:
            async with session_scope(self._session_factory) as db:
                result = await db.execute(
                    select(DicomData).order_by(DicomData.upload_date.desc(), DicomData.id.desc())
                )
                return list(result.scalars().all())
        except _DB_ERRORS as e:
            raise self._database_error("list", "*", e) from e

    async def delete_image(self, image_id: Any) -> Optional[DicomData]:
        """
        Delete a row.

        Returns:
            The deleted row (for storage cleanup), or None if it did not exist
        """
        row_id = self._parse_id(image_id)
        if row_id is None:
            return None

        try:
            async with session_scope(self._session_factory) as db:
                row = await self._load(db, row_id)
                if row is None:
                    return None
                await db.delete(row)
        except _DB_ERRORS as e:
            raise self._database_error("delete", image_id, e) from e

        logger.info("Image row deleted", extra={"image_id": row_id})
        return row

    async def touch_last_accessed(self, image_id: Any) -> bool:
        row_id = self._parse_id(image_id)
        if row_id is None:
            return False

        try:
            async with session_scope(self._session_factory) as db:
                row = await self._load(db, row_id)
                if row is None:
                    return False
                row.last_accessed = datetime.now(timezone.utc)
        except _DB_ERRORS as e:
            raise self._database_error("update", image_id, e) from e
        return True

    async def replace_metadata(
        self,
        image_id: Any,
        record: MetadataRecord
    ) -> Optional[DicomData]:
        """
        Overwrite all metadata columns of a row with ``record``.

        Returns:
            Updated row, or None if the image does not exist
        """
        row_id = self._parse_id(image_id)
        if row_id is None:
            return None

        try:
            async with session_scope(self._session_factory) as db:
                row = await self._load(db, row_id)
                if row is None:
                    return None
                apply_record(row, record)
                row.updated_at = datetime.now(timezone.utc)
                await db.flush()
        except _DB_ERRORS as e:
            raise self._database_error("update", image_id, e) from e

        logger.debug("Image metadata stored", extra={"image_id": row_id})
        return row

    async def update_annotation(
        self,
        image_id: Any,
        annotation_type: Optional[str],
        annotation_label: Optional[str],
        annotation_data: Optional[str]
    ) -> Optional[DicomData]:
        """
        Replace the annotation slot of a row.

        ``has_annotations`` is true whenever annotation data is present.
        """
        row_id = self._parse_id(image_id)
        if row_id is None:
            return None

        try:
            async with session_scope(self._session_factory) as db:
                row = await self._load(db, row_id)
                if row is None:
                    return None
                row.annotation_type = annotation_type
                row.annotation_label = annotation_label
                row.annotation_data = annotation_data
                row.has_annotations = bool(annotation_data)
                row.updated_at = datetime.now(timezone.utc)
                await db.flush()
        except _DB_ERRORS as e:
            raise self._database_error("update", image_id, e) from e

        logger.info(
            "Image annotation updated",
            extra={"image_id": row_id, "has_annotations": row.has_annotations}
        )
        return row
