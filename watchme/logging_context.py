"""
Request id propagation for structured logs.

The id lives in a contextvar, so it follows the request through threads
and is merged into every structlog event.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request id in context, generating one when not given.

    Returns:
        The request id that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def bind_context(**kwargs):
    """Bind extra key/values to every log event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context():
    """Drop the request id and bound values, e.g. at the end of a request."""
    request_id_var.set(None)
    structlog.contextvars.clear_contextvars()
