"""
Request logging middleware.

Binds correlation, request and viewer ids for the duration of a request,
logs one line when it finishes and echoes the ids as response headers.
Health probes are logged at DEBUG to keep them out of INFO streams.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from dicomvault.core.logging.adapter import get_context_logger
from dicomvault.core.logging.context import (
    bind_request_context,
    generate_correlation_id,
    generate_request_id,
    reset_request_context,
)

logger = get_context_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
REQUEST_HEADER = "X-Request-ID"
VIEWER_HEADER = "X-Viewer-ID"

_QUIET_PATHS = frozenset({"/", "/api/health"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Per-request id binding and access logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or generate_correlation_id()
        request_id = generate_request_id()
        viewer_id = request.headers.get(VIEWER_HEADER)

        tokens = bind_request_context(correlation_id, request_id, viewer_id)
        started = time.perf_counter()
        path = request.url.path
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": path,
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
                exc_info=True
            )
            raise
        else:
            level = "debug" if path in _QUIET_PATHS else "info"
            getattr(logger, level)(
                f"{request.method} {path} -> {response.status_code}",
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": response.status_code,
                    "content_length": response.headers.get("content-length"),
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                }
            )
            response.headers[CORRELATION_HEADER] = correlation_id
            response.headers[REQUEST_HEADER] = request_id
            if viewer_id:
                response.headers[VIEWER_HEADER] = viewer_id
            return response
        finally:
            reset_request_context(tokens)
