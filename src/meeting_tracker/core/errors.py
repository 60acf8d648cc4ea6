"""Domain error taxonomy and its HTTP mapping.

Services raise these exceptions; the API layer turns them into JSON error
responses through a single FastAPI exception handler registered in
``create_app``. Each error carries the HTTP status it maps to so routers
never translate errors by hand.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class TrackerError(Exception):
    """Base class for all domain errors surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    """Malformed or missing input, or a roster that fails membership rules."""

    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(TrackerError):
    """Credentials are missing or wrong."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AccessDenied(TrackerError):
    """Caller's role or relationship to the resource forbids the action."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(TrackerError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(TrackerError):
    status_code = status.HTTP_409_CONFLICT


class InvalidState(TrackerError, ValueError):
    """Lifecycle transition not allowed from the meeting's current status."""

    status_code = status.HTTP_400_BAD_REQUEST


class ExternalServiceError(TrackerError):
    """A collaborator on the synchronous critical path failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class ParseError(TrackerError):
    """The completion service replied with something that is not the agreed shape."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    """Render a TrackerError as ``{"detail": message}`` with its status code."""
    log_method = logger.warning if exc.status_code < 500 else logger.error
    log_method(
        "request.domain_error",
        error_type=type(exc).__name__,
        detail=exc.message,
        path=request.url.path,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrackerError, tracker_error_handler)
