"""
Exceptions raised by the DICOM Vault service.

Every exception carries an HTTP status, a machine-readable error code and a
details mapping, and renders as ``{"error": {"code", "message", "details"}}``.
Subclasses only declare their defaults as class attributes.

Exception Hierarchy:
    AppException (base, 500)
    ├── ValidationException (400)        rejected upload or metadata form
    ├── NotFoundException (404)
    │   └── ImageNotFoundException       unknown image id
    ├── ExtractionStateException (409)   illegal session transition
    ├── DicomParseException (422)        unreadable DICOM bytes
    ├── StorageException (500)
    └── DatabaseException (500)

The extraction core never lets ``DicomParseException`` or gateway errors
escape a session; they surface as session warnings instead.
"""

from typing import Any, ClassVar, Dict, Optional

from dicomvault.core.logging import get_logger

logger = get_logger(__name__)


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """JSON body shared by every error response."""
    return {"error": {"code": code, "message": message, "details": details or {}}}


class AppException(Exception):
    """
    Base exception for all application exceptions.

    Logged on construction: 5xx at ERROR with the active traceback, the
    rest at WARNING.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code
        error_code: Machine-readable error code
        details: Additional context information
    """

    default_status: ClassVar[int] = 500
    default_code: ClassVar[str] = "INTERNAL_ERROR"
    default_message: ClassVar[str] = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_code
        self.status_code = status_code or self.default_status
        self.details = details or {}
        super().__init__(self.message)

        extra = {
            "error_code": self.error_code,
            "status_code": self.status_code,
            "error_message": self.message,
            "error_details": self.details,
        }
        if self.status_code >= 500:
            logger.error(f"{type(self).__name__}: {self.error_code}", extra=extra, exc_info=True)
        else:
            logger.warning(f"{type(self).__name__}: {self.error_code}", extra=extra)

    def to_dict(self) -> Dict[str, Any]:
        return error_body(self.error_code, self.message, self.details)


class ValidationException(AppException):
    """Upload or metadata rejected (empty, too large, wrong type, bad JSON)."""
    default_status = 400
    default_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class NotFoundException(AppException):
    default_status = 404
    default_code = "NOT_FOUND"
    default_message = "Resource not found"


class ImageNotFoundException(NotFoundException):
    """No ``dicom_data`` row for the requested id."""
    default_code = "IMAGE_NOT_FOUND"

    def __init__(self, image_id: Any):
        super().__init__(
            message=f"Image with ID {image_id} not found",
            details={"image_id": image_id}
        )


class ExtractionStateException(AppException):
    """Extraction session asked to make a transition its state machine forbids."""
    default_status = 409
    default_code = "INVALID_EXTRACTION_TRANSITION"
    default_message = "Illegal extraction state transition"


class DicomParseException(AppException):
    default_status = 422
    default_code = "DICOM_PARSE_ERROR"
    default_message = "Failed to parse DICOM data"


class StorageException(AppException):
    default_code = "STORAGE_ERROR"
    default_message = "Storage operation failed"


class DatabaseException(AppException):
    default_code = "DATABASE_ERROR"
    default_message = "Database operation failed"
