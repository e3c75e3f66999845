"""Translate engine errors into HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from coachplan.core.errors import (
    EngineError,
    InvalidScheduleInputError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    PartialFailureError,
    ProgressInvariantError,
    ValidationError,
)
from coachplan.core.locks import LockTimeoutError

STATUS_BY_ERROR: dict[type[EngineError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidScheduleInputError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotAuthorizedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    LockTimeoutError: status.HTTP_409_CONFLICT,
    PartialFailureError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ProgressInvariantError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: EngineError) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_400_BAD_REQUEST


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}", details=exc.details)
    else:
        logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}", details=exc.details)
    body = exc.to_dict()
    body["retryable"] = exc.retryable
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)  # type: ignore[arg-type]
