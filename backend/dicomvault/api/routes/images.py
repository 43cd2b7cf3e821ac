"""
Image endpoints: upload, listing, retrieval, metadata and extraction.

Custom exceptions raised by the service layer are rendered by the global
exception handlers.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, UploadFile
from fastapi.responses import Response

from dicomvault.core.container import get_image_service
from dicomvault.core.logging import get_logger
from dicomvault.models.metadata import MetadataRecord
from dicomvault.models.schemas import (
    AnnotationResponse,
    AnnotationUpdate,
    BatchUploadResponse,
    ErrorResponse,
    ExtractionReport,
    ImageSummary,
    MessageResponse,
    UploadResponse,
)
from dicomvault.services.image_service import ImageService, parse_metadata_form

router = APIRouter(
    prefix="/images",
    tags=["Images"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid upload or metadata"},
        404: {"model": ErrorResponse, "description": "Image not found"},
    },
)
logger = get_logger(__name__)


@router.get("", response_model=List[ImageSummary])
async def list_images(image_service: ImageService = Depends(get_image_service)):
    """List stored images, newest first."""
    return await image_service.list_images()


@router.post("", response_model=UploadResponse, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    metadata: Optional[str] = Form(None, description="Client-side metadata snapshot (JSON object)"),
    image_service: ImageService = Depends(get_image_service)
):
    """
    Upload a DICOM file.

    The optional ``metadata`` form field seeds the stored record; server-side
    extraction then fills whatever it left empty.
    """
    client_metadata = parse_metadata_form(metadata)
    data = await file.read()
    return await image_service.upload(
        file_name=file.filename or "upload.dcm",
        content_type=file.content_type,
        data=data,
        client_metadata=client_metadata,
    )


@router.post("/batch", response_model=BatchUploadResponse)
async def upload_images(
    files: List[UploadFile] = File(...),
    image_service: ImageService = Depends(get_image_service)
):
    """Upload several DICOM files; each file succeeds or fails independently."""
    logger.info("Batch upload request", extra={"file_count": len(files)})
    items = [
        (upload.filename or "upload.dcm", upload.content_type, await upload.read())
        for upload in files
    ]
    return await image_service.upload_batch(items)


@router.get("/{image_id}")
async def get_image(
    image_id: int,
    image_service: ImageService = Depends(get_image_service)
):
    """Download the stored DICOM object."""
    row, data = await image_service.get_image_file(image_id)
    return Response(
        content=data,
        media_type="application/dicom",
        headers={"Content-Disposition": f'attachment; filename="{row.file_name}"'}
    )


@router.delete("/{image_id}", response_model=MessageResponse)
async def delete_image(
    image_id: int,
    image_service: ImageService = Depends(get_image_service)
):
    await image_service.delete_image(image_id)
    return MessageResponse(message="Image deleted successfully")


@router.get("/{image_id}/metadata", response_model=MetadataRecord)
async def get_metadata(
    image_id: int,
    image_service: ImageService = Depends(get_image_service)
):
    """Persisted metadata record (camelCase fields, empty values as "" / 0)."""
    return await image_service.get_metadata(image_id)


@router.put("/{image_id}/metadata", response_model=MetadataRecord)
async def update_metadata(
    image_id: int,
    payload: dict,
    image_service: ImageService = Depends(get_image_service)
):
    """
    Replace the persisted metadata record.

    Keys are matched case-insensitively; missing or unparsable values are
    stored as empty.
    """
    record = MetadataRecord.from_payload(payload)
    return await image_service.replace_metadata(image_id, record)


@router.post("/{image_id}/extract", response_model=ExtractionReport)
async def extract_metadata(
    image_id: int,
    viewer_id: Optional[str] = Header(None, alias="X-Viewer-ID"),
    image_service: ImageService = Depends(get_image_service)
):
    """
    Run view-time extraction for a stored image and persist the merge.

    Requests carrying the same ``X-Viewer-ID`` share one session slot: a new
    request aborts that viewer's unfinished session.
    """
    return await image_service.extract(image_id, viewer_id=viewer_id)


@router.put("/{image_id}/annotation", response_model=AnnotationResponse)
async def update_annotation(
    image_id: int,
    update: AnnotationUpdate,
    image_service: ImageService = Depends(get_image_service)
):
    return await image_service.update_annotation(image_id, update)
