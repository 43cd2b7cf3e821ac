"""
Context-local identifiers attached to every log record.

- correlation_id: end-to-end id, taken from ``X-Correlation-ID`` or generated
- request_id: one HTTP request
- viewer_id: client viewer slot from ``X-Viewer-ID``
- session_id: extraction session currently being driven

Request-scoped ids are bound with :func:`bind_request_context` and restored
with :func:`reset_request_context`, so nested or concurrent tasks never see
each other's ids.
"""

import uuid
from contextvars import ContextVar, Token
from typing import Dict, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
viewer_id_var: ContextVar[Optional[str]] = ContextVar('viewer_id', default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)

_REQUEST_VARS: Dict[str, ContextVar] = {
    "correlation_id": correlation_id_var,
    "request_id": request_id_var,
    "viewer_id": viewer_id_var,
}


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Short random id, e.g. ``req-3f9a1c2b7d4e``."""
    return f"req-{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_viewer_id() -> Optional[str]:
    return viewer_id_var.get()


def set_session_id(session_id: Optional[str]) -> None:
    """Set the extraction session ID for the current context."""
    session_id_var.set(session_id)


def get_session_id() -> Optional[str]:
    return session_id_var.get()


def current_context() -> Dict[str, str]:
    """All identifiers bound in the current context, unset ones omitted."""
    values = {name: var.get() for name, var in _REQUEST_VARS.items()}
    values["session_id"] = session_id_var.get()
    return {name: value for name, value in values.items() if value}


def bind_request_context(
    correlation_id: str,
    request_id: str,
    viewer_id: Optional[str] = None
) -> Dict[str, Token]:
    """
    Bind the ids of one HTTP request.

    Returns:
        Tokens to pass to :func:`reset_request_context`
    """
    values = {
        "correlation_id": correlation_id,
        "request_id": request_id,
        "viewer_id": viewer_id,
    }
    return {name: _REQUEST_VARS[name].set(value) for name, value in values.items()}


def reset_request_context(tokens: Dict[str, Token]) -> None:
    for name, token in tokens.items():
        _REQUEST_VARS[name].reset(token)
