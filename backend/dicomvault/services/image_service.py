"""
Image application service.

Thin collaborator layer around the metadata core: validates and stores
uploads, keeps the image catalog current and runs extraction sessions for
uploads and viewers.

@module services.image_service
"""

import asyncio
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from dicomvault.core.config import Settings
from dicomvault.core.exceptions import (
    AppException,
    ImageNotFoundException,
    NotFoundException,
    ValidationException,
)
from dicomvault.core.interfaces import IBinaryCodec, IStorageService
from dicomvault.core.logging import get_context_logger
from dicomvault.models.database import DicomData
from dicomvault.models.metadata import MetadataRecord
from dicomvault.models.schemas import (
    AnnotationResponse,
    AnnotationUpdate,
    BatchItemResult,
    BatchUploadResponse,
    ExtractionReport,
    ImageSummary,
    UploadResponse,
)
from dicomvault.services.extraction_orchestrator import (
    ExtractionOrchestrator,
    ExtractionSession,
)
from dicomvault.services.image_catalog import CatalogEntry, ImageCatalog
from dicomvault.services.metadata_repository import DicomDataRepository, record_from_row
from dicomvault.services.reconciliation_service import ReconciliationEngine

logger = get_context_logger(__name__)

DEFAULT_VIEWER_ID = "default"

# (file name, content type, data)
UploadItem = Tuple[str, Optional[str], bytes]


def entry_from_row(row: DicomData) -> CatalogEntry:
    record = record_from_row(row)
    return CatalogEntry(
        id=row.id,
        name=row.file_name,
        content_type=row.content_type,
        patient_id=record.patient_id,
        patient_name=record.patient_name,
        modality=record.modality,
        study_instance_uid=record.study_instance_uid,
        upload_date=row.upload_date,
    )


def summary_from_entry(entry: CatalogEntry) -> ImageSummary:
    return ImageSummary(
        id=entry.id,
        name=entry.name,
        content_type=entry.content_type,
        patient_id=entry.patient_id,
        patient_name=entry.patient_name,
        modality=entry.modality,
        study_instance_uid=entry.study_instance_uid,
        upload_date=entry.upload_date,
    )


def report_from_session(session: ExtractionSession) -> ExtractionReport:
    return ExtractionReport(
        image_id=session.image_id,
        session_id=session.session_id,
        state=session.state.value,
        persisted=session.persisted,
        filled_fields=sorted(session.delta),
        conflicts=list(session.conflicts),
        warnings=list(session.warnings),
        abort_reason=session.abort_reason,
        metadata=session.merged,
    )


def parse_metadata_form(raw: Optional[str]) -> Optional[MetadataRecord]:
    """
    Parse the optional ``metadata`` form field of an upload.

    Raises:
        ValidationException: If the field is not a JSON object
    """
    if raw is None or not raw.strip():
        return None

    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise ValidationException(
            message="Upload metadata is not valid JSON",
            error_code="INVALID_METADATA",
            details={"error": str(e)}
        ) from e

    if not isinstance(payload, dict):
        raise ValidationException(
            message="Upload metadata must be a JSON object",
            error_code="INVALID_METADATA",
            details={"type": type(payload).__name__}
        )
    return MetadataRecord.from_payload(payload)


class ImageService:
    """
    Image upload, retrieval and extraction service.

    One extraction orchestrator is kept per viewer id while that viewer has
    a session in flight; a new extraction on the same viewer aborts the
    previous one. Idle viewers are dropped from the registry. Uploads each get
    their own orchestrator, so batch sessions share no state.
    """

    def __init__(
        self,
        repository: DicomDataRepository,
        storage: IStorageService,
        codec: IBinaryCodec,
        catalog: ImageCatalog,
        engine: ReconciliationEngine,
        settings: Settings
    ):
        self._repository = repository
        self._storage = storage
        self._codec = codec
        self._catalog = catalog
        self._engine = engine
        self._settings = settings
        self._viewers: Dict[str, ExtractionOrchestrator] = {}
        self._batch_limit = asyncio.Semaphore(settings.EXTRACTION_MAX_CONCURRENCY)

    @property
    def catalog(self) -> ImageCatalog:
        return self._catalog

    def _new_orchestrator(self, name: str) -> ExtractionOrchestrator:
        return ExtractionOrchestrator(
            gateway=self._repository,
            codec=self._codec,
            engine=self._engine,
            name=name
        )

    def orchestrator_for(self, viewer_id: Optional[str] = None) -> ExtractionOrchestrator:
        """Orchestrator bound to a viewer, created on first use."""
        key = viewer_id or DEFAULT_VIEWER_ID
        orchestrator = self._viewers.get(key)
        if orchestrator is None:
            orchestrator = self._new_orchestrator(f"viewer:{key}")
            self._viewers[key] = orchestrator
        return orchestrator

    def _release_viewer(self, viewer_id: Optional[str], orchestrator: ExtractionOrchestrator) -> None:
        """Drop a viewer's orchestrator once it has no session in flight."""
        key = viewer_id or DEFAULT_VIEWER_ID
        session = orchestrator.current
        if self._viewers.get(key) is orchestrator and (session is None or session.is_terminal):
            del self._viewers[key]

    @property
    def active_viewers(self) -> int:
        """Number of viewers with a registered orchestrator."""
        return len(self._viewers)

    def image_ref(self, image_id: int) -> str:
        """Viewer image reference for a stored image."""
        return f"wadouri:{self._settings.API_V1_STR}/images/{image_id}"

    async def _require_row(self, image_id: int) -> DicomData:
        row = await self._repository.get_image(image_id)
        if row is None:
            raise ImageNotFoundException(image_id)
        return row

    def _validate_upload(self, file_name: str, content_type: Optional[str], data: bytes) -> None:
        if not data:
            raise ValidationException(
                message="No file uploaded",
                error_code="EMPTY_UPLOAD",
                details={"file_name": file_name}
            )

        if len(data) > self._settings.MAX_UPLOAD_SIZE:
            raise ValidationException(
                message="File exceeds maximum upload size",
                error_code="FILE_TOO_LARGE",
                details={
                    "file_name": file_name,
                    "size": len(data),
                    "max_size": self._settings.MAX_UPLOAD_SIZE
                }
            )

        extension = Path(file_name or "").suffix.lower()
        media_type = (content_type or "").split(";", 1)[0].strip().lower()
        if (extension not in self._settings.ALLOWED_EXTENSIONS
                and media_type not in self._settings.ALLOWED_CONTENT_TYPES):
            raise ValidationException(
                message="Unsupported file type",
                error_code="UNSUPPORTED_FILE_TYPE",
                details={
                    "file_name": file_name,
                    "content_type": content_type,
                    "allowed_extensions": self._settings.ALLOWED_EXTENSIONS
                }
            )

    async def _discard_stored(self, path: str) -> None:
        """Remove a stored file whose row could not be created."""
        try:
            await self._storage.delete(path)
        except AppException as e:
            logger.warning(
                "Orphaned upload could not be removed",
                extra={"path": path, "error": e.message}
            )

    async def upload(
        self,
        file_name: str,
        content_type: Optional[str],
        data: bytes,
        client_metadata: Optional[MetadataRecord] = None
    ) -> UploadResponse:
        """
        Store an upload and extract its metadata.

        The row is seeded with the client's upload-time snapshot, which then
        acts as the baseline for server-side extraction from the bytes.

        Args:
            file_name: Client file name
            content_type: Client content type
            data: File content
            client_metadata: Snapshot parsed by the client, if any

        Returns:
            UploadResponse with the merged metadata and the session report
        """
        self._validate_upload(file_name, content_type, data)

        stored = await self._storage.save(file_name, data)
        try:
            row = await self._repository.create_image(
                file_name=file_name,
                file_size=stored.size,
                storage_path=stored.path,
                content_type=content_type,
                checksum_sha256=stored.checksum_sha256,
                record=client_metadata,
            )
        except Exception:
            await self._discard_stored(stored.path)
            raise

        self._catalog.upsert(entry_from_row(row))

        orchestrator = self._new_orchestrator(f"upload:{row.id}")
        session = await orchestrator.run(str(row.id), data, image_ref=file_name)
        metadata = session.merged or client_metadata or MetadataRecord.empty()
        self._catalog.apply_metadata(row.id, metadata)

        logger.info(
            "Image uploaded",
            extra={
                "image_id": row.id,
                "file_name": file_name,
                "size": stored.size,
                "extraction_state": session.state.value,
                "persisted": session.persisted,
            }
        )

        entry = self._catalog.get(row.id) or entry_from_row(row)
        return UploadResponse(
            **summary_from_entry(entry).model_dump(),
            file_size=stored.size,
            checksum_sha256=stored.checksum_sha256,
            metadata=metadata,
            extraction=report_from_session(session),
        )

    async def _upload_one(self, item: UploadItem) -> BatchItemResult:
        file_name, content_type, data = item
        async with self._batch_limit:
            try:
                response = await self.upload(file_name, content_type, data)
            except AppException as e:
                return BatchItemResult(file_name=file_name, success=False, error=e.message)
            except Exception as e:
                logger.error(
                    "Batch item failed unexpectedly",
                    extra={"file_name": file_name, "error_type": type(e).__name__, "error": str(e)},
                    exc_info=True
                )
                return BatchItemResult(
                    file_name=file_name, success=False, error="Unexpected error while storing file"
                )
        return BatchItemResult(file_name=file_name, success=True, image_id=response.id)

    async def upload_batch(self, items: Iterable[UploadItem]) -> BatchUploadResponse:
        """Upload several files as independent, concurrently running sessions."""
        results: List[BatchItemResult] = list(
            await asyncio.gather(*(self._upload_one(item) for item in items))
        )
        succeeded = sum(1 for result in results if result.success)

        logger.info(
            "Batch upload completed",
            extra={"total": len(results), "succeeded": succeeded, "failed": len(results) - succeeded}
        )
        return BatchUploadResponse(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )

    async def list_images(self) -> List[ImageSummary]:
        """List stored images and refresh the catalog from the database."""
        rows = await self._repository.list_images()
        self._catalog.replace_all(entry_from_row(row) for row in rows)
        return [summary_from_entry(entry) for entry in self._catalog.snapshot()]

    async def get_image_file(self, image_id: int) -> Tuple[DicomData, bytes]:
        """Read the stored object and record the access."""
        row = await self._require_row(image_id)
        if not row.storage_path:
            raise NotFoundException(
                message=f"DICOM file for image ID {image_id} not found on server",
                error_code="FILE_NOT_FOUND",
                details={"image_id": image_id}
            )

        data = await self._storage.read(row.storage_path)
        await self._repository.touch_last_accessed(image_id)
        return row, data

    async def delete_image(self, image_id: int) -> None:
        row = await self._repository.delete_image(image_id)
        if row is None:
            raise ImageNotFoundException(image_id)

        if row.storage_path:
            try:
                await self._storage.delete(row.storage_path)
            except AppException as e:
                logger.warning(
                    "Stored file could not be removed",
                    extra={"image_id": image_id, "path": row.storage_path, "error": e.message}
                )

        self._catalog.remove(image_id)
        logger.info("Image deleted", extra={"image_id": image_id})

    async def get_metadata(self, image_id: int) -> MetadataRecord:
        row = await self._require_row(image_id)
        return record_from_row(row)

    async def replace_metadata(self, image_id: int, record: MetadataRecord) -> MetadataRecord:
        """Overwrite the persisted record (explicit client edit)."""
        row = await self._repository.replace_metadata(image_id, record)
        if row is None:
            raise ImageNotFoundException(image_id)

        stored = record_from_row(row)
        self._catalog.apply_metadata(image_id, stored)
        logger.info("Image metadata replaced", extra={"image_id": image_id})
        return stored

    async def extract(self, image_id: int, viewer_id: Optional[str] = None) -> ExtractionReport:
        """
        Run a view-time extraction for a stored image.

        The stored object is only read once the baseline has been fetched.
        """
        row = await self._require_row(image_id)
        storage_path = row.storage_path

        async def load() -> bytes:
            if not storage_path:
                raise NotFoundException(
                    message=f"DICOM file for image ID {image_id} not found on server",
                    error_code="FILE_NOT_FOUND",
                    details={"image_id": image_id}
                )
            return await self._storage.read(storage_path)

        orchestrator = self.orchestrator_for(viewer_id)
        try:
            session = await orchestrator.run(str(image_id), load, image_ref=self.image_ref(image_id))
        finally:
            self._release_viewer(viewer_id, orchestrator)

        if session.is_settled and session.merged is not None:
            self._catalog.apply_metadata(image_id, session.merged)

        return report_from_session(session)

    async def update_annotation(self, image_id: int, update: AnnotationUpdate) -> AnnotationResponse:
        data = update.annotation_data
        if data is not None and not isinstance(data, str):
            data = json.dumps(data)

        row = await self._repository.update_annotation(
            image_id,
            annotation_type=update.annotation_type,
            annotation_label=update.annotation_label,
            annotation_data=data,
        )
        if row is None:
            raise ImageNotFoundException(image_id)

        return AnnotationResponse(
            image_id=row.id,
            has_annotations=row.has_annotations,
            annotation_type=row.annotation_type,
            annotation_label=row.annotation_label,
            annotation_data=row.annotation_data,
        )
