"""
Custom exception hierarchy for PawTrail.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

DuplicateEventError is never surfaced to clients: the ledger catches it
and answers `{duplicated: true}` instead, because a retried request that
was already credited is a success, not a failure.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class PawTrailException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(PawTrailException):
    """Malformed input rejected before any I/O."""
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )


class NotFoundError(PawTrailException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class WalkNotFoundError(NotFoundError):
    code = "WALK_NOT_FOUND"

    def __init__(self, walk_id: int):
        super().__init__(
            message=f"Walk {walk_id} not found.",
            details={"walk_id": walk_id},
        )


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        super().__init__(
            message=f"User {user_id} not found.",
            details={"user_id": user_id},
        )


class InvalidStateError(PawTrailException):
    http_status = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"


class WalkAlreadyCompletedError(InvalidStateError):
    code = "WALK_ALREADY_COMPLETED"

    def __init__(self, walk_id: int):
        super().__init__(
            message=f"Walk {walk_id} is already completed; route can no longer change.",
            details={"walk_id": walk_id},
        )


class DuplicateEventError(PawTrailException):
    http_status = status.HTTP_409_CONFLICT
    code = "DUPLICATE_EVENT"

    def __init__(self, unique_hash: str):
        self.unique_hash = unique_hash
        super().__init__(
            message="Event already registered.",
            details={"unique_hash": unique_hash},
        )


class CollaboratorUnavailableError(PawTrailException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "COLLABORATOR_UNAVAILABLE"

    def __init__(self, collaborator: str, message: str | None = None):
        super().__init__(
            message=message or f"{collaborator} is temporarily unavailable. Retry the request.",
            details={"collaborator": collaborator},
        )


class PoiLookupError(Exception):
    """POI lookup failed. Never reaches the HTTP layer (degrades to no POIs)."""


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def pawtrail_exception_handler(request: Request, exc: PawTrailException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
