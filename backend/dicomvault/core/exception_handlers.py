"""
Exception handlers that render every failure as the standard error body.

Request context (method, path, image id from the path, viewer id header)
is attached to each logged failure so API errors can be matched with the
extraction session logs of the same viewer.
"""

from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dicomvault.core.exceptions import AppException, error_body
from dicomvault.core.logging import get_context_logger

logger = get_context_logger(__name__)


def _request_context(request: Request) -> Dict[str, Any]:
    context = {"method": request.method, "path": request.url.path}
    image_id = request.path_params.get("image_id")
    if image_id is not None:
        context["image_id"] = image_id
    return context


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    # AppException logs itself on construction
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed path, header or body parameters, e.g. a non-numeric image id."""
    errors = jsonable_encoder(exc.errors())
    logger.warning(
        "Request validation failed",
        extra={**_request_context(request), "errors": errors}
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", "Invalid request parameters", {"errors": errors})
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        "HTTP error response",
        extra={**_request_context(request), "status_code": exc.status_code, "detail": exc.detail}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(f"HTTP_{exc.status_code}", str(exc.detail)),
        headers=getattr(exc, "headers", None)
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback; the client only sees a generic 500 body."""
    context = _request_context(request)
    logger.error(
        "Unhandled exception",
        extra={**context, "error_type": type(exc).__name__, "error": str(exc)},
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "An unexpected error occurred", context)
    )


_HANDLERS = (
    (AppException, app_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (StarletteHTTPException, http_exception_handler),
    # Lowest priority
    (Exception, unhandled_exception_handler),
)


def register_exception_handlers(app: FastAPI) -> None:
    for exc_class, handler in _HANDLERS:
        app.add_exception_handler(exc_class, handler)
    logger.debug("Exception handlers registered", extra={"count": len(_HANDLERS)})
