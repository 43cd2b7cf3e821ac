from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional, Union
from datetime import datetime

from dicomvault.models.metadata import MetadataRecord


class CamelModel(BaseModel):
    """Base for API schemas: snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthCheck(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: datetime
    database: Optional[str] = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error response."""
    error: ErrorDetail


class MessageResponse(BaseModel):
    message: str


class ImageSummary(CamelModel):
    """Image as shown in listings."""
    id: int
    name: str
    content_type: Optional[str] = None
    patient_id: str = ""
    patient_name: str = ""
    modality: str = ""
    study_instance_uid: str = ""
    upload_date: Optional[datetime] = None


class ExtractionReport(CamelModel):
    """Outcome of one extraction session."""
    image_id: str
    session_id: str
    state: str
    persisted: bool = False
    filled_fields: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    abort_reason: Optional[str] = None
    metadata: Optional[MetadataRecord] = None


class UploadResponse(ImageSummary):
    """Result of a single upload."""
    file_size: int
    checksum_sha256: str
    metadata: MetadataRecord
    extraction: ExtractionReport


class BatchItemResult(CamelModel):
    file_name: str
    success: bool
    image_id: Optional[int] = None
    error: Optional[str] = None


class BatchUploadResponse(CamelModel):
    """Per-file results of a multi-file upload."""
    total: int
    succeeded: int
    failed: int
    results: List[BatchItemResult] = Field(default_factory=list)


class AnnotationUpdate(CamelModel):
    """Annotation payload; ``annotation_data`` may be raw text or JSON."""
    annotation_type: Optional[str] = Field(default=None, max_length=50)
    annotation_label: Optional[str] = Field(default=None, max_length=255)
    annotation_data: Optional[Union[str, Dict[str, Any], List[Any]]] = None


class AnnotationResponse(CamelModel):
    image_id: int
    has_annotations: bool
    annotation_type: Optional[str] = None
    annotation_label: Optional[str] = None
    annotation_data: Optional[str] = None
