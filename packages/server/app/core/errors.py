"""
Domain errors for the submission lifecycle and their HTTP envelope.

Services raise these internally and convert them to typed outcomes at their
boundary; the API maps whatever still escapes to the JSON error envelope
``{"error": {"code", "message", "status"}}``.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from studygroup_shared.schemas.common import APIError


class SubmissionLifecycleError(Exception):
    """Base class for every error the lifecycle engine reports."""

    code = "LIFECYCLE_ERROR"
    http_status = 400

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_api_error(self) -> APIError:
        return APIError(
            code=self.code,
            message=self.message,
            status=self.http_status,
            detail=self.detail or None,
        )


class NotFound(SubmissionLifecycleError):
    code = "NOT_FOUND"
    http_status = 404


class NotAuthorized(SubmissionLifecycleError):
    code = "NOT_AUTHORIZED"
    http_status = 403


class EmptyPayload(SubmissionLifecycleError):
    code = "EMPTY_PAYLOAD"
    http_status = 422


class StoreWriteFailure(SubmissionLifecycleError):
    """One of the independent submission writes failed."""

    code = "STORE_WRITE_FAILURE"
    http_status = 500

    def __init__(self, write: str, message: str):
        super().__init__(message, write=write)
        self.write = write


class PartialDeletionFailure(SubmissionLifecycleError):
    """An ordered delete stopped at ``step``; ``completed`` steps stay committed."""

    code = "PARTIAL_DELETION_FAILURE"
    http_status = 500

    def __init__(self, step: str, completed: Sequence[str], message: Optional[str] = None):
        super().__init__(
            message or f"Deletion stopped at step '{step}'",
            step=step,
            completed=list(completed),
        )
        self.step = step
        self.completed = list(completed)


def error_response(error: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status,
        content={"error": error.model_dump(exclude_none=True)},
    )


async def _lifecycle_error_handler(request: Request, exc: SubmissionLifecycleError) -> JSONResponse:
    return error_response(exc.to_api_error())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SubmissionLifecycleError, _lifecycle_error_handler)


_STATUS_BY_CODE = {
    cls.code: cls.http_status
    for cls in (NotFound, NotAuthorized, EmptyPayload, StoreWriteFailure, PartialDeletionFailure)
}


def http_status_for(code: str) -> int:
    """HTTP status for a rejection reason carried in a service outcome."""
    return _STATUS_BY_CODE.get(code, SubmissionLifecycleError.http_status)
