"""Exception handlers that render relay errors as `{"error": ...}` bodies.

Terminal rejections map to 4xx so the voter fixes and resubmits; transient
unavailability maps to 503 so the voter retries the same intent.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gasless_relay.services.errors import (
    ContractNotConfiguredError,
    DuplicatePendingError,
    QueueFullError,
    SubmissionInProgressError,
    ValidatorUnavailableError,
    VoteRejectedError,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_HINT = (
    "Required: pollId (number), vote (boolean), nonce (number), "
    "signature (string), voter (string)"
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def describe_validation_error(exc: RequestValidationError) -> str:
    """Build a readable message naming each offending field."""
    problems: list[str] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = ".".join(loc) or "body"
        problems.append(f"{field}: {err.get('msg', 'invalid')}")
    detail = "; ".join(problems) if problems else "malformed body"
    return f"Invalid request body ({detail}). {REQUIRED_FIELDS_HINT}"


def register_exception_handlers(app: FastAPI) -> None:
    """Attach relay error handlers to the application."""

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, describe_validation_error(exc))

    @app.exception_handler(VoteRejectedError)
    async def _vote_rejected(_: Request, exc: VoteRejectedError) -> JSONResponse:
        logger.info("Vote rejected (%s): %s", exc.reason.value, exc.message)
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(DuplicatePendingError)
    async def _duplicate(_: Request, exc: DuplicatePendingError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "vote already pending")

    @app.exception_handler(QueueFullError)
    async def _full(_: Request, exc: QueueFullError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "relayer at capacity")

    @app.exception_handler(ValidatorUnavailableError)
    async def _unavailable(_: Request, exc: ValidatorUnavailableError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "validator unavailable, retry later")

    @app.exception_handler(ContractNotConfiguredError)
    async def _not_configured(_: Request, exc: ContractNotConfiguredError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(SubmissionInProgressError)
    async def _in_progress(_: Request, exc: SubmissionInProgressError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "Batch processing already in progress")

    @app.exception_handler(StarletteHTTPException)
    async def _http(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return _error(exc.status_code, "Endpoint not found")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled(_: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s", exc, exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
