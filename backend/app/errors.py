"""HTTP mapping for workflow errors.

Every ``WorkflowError`` reaching the API is rendered as JSON with its stable
``code`` so clients can branch without parsing messages.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from jobflow.errors import (
    AssignmentConflict,
    AuthorizationDenied,
    ConcurrencyConflict,
    InvalidTransition,
    NetworkFailure,
    NotFoundError,
    StorageError,
    ValidationError,
    WorkflowError,
)

from .logging_config import get_logger

logger = get_logger("jobflow.api.errors")

STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationDenied: status.HTTP_403_FORBIDDEN,
    AssignmentConflict: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NetworkFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: WorkflowError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODES:
            return STATUS_CODES[exc_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} | {exc.code} | {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} | {exc.code} | {exc.message}")
    headers = {"Retry-After": "5"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
