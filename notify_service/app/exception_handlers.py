"""Global exception handlers for FastAPI application."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from notify_service.core.exceptions import AppException
from notify_service.core.schemas.problem_details import (
    FieldError,
    ProblemDetails,
    ValidationProblemDetails,
)
from notify_service.infra.metrics import tracking

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _problem_response(
    status_code: int,
    problem: ProblemDetails,
    request_id: str | None,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    content = problem.model_dump(exclude_none=True)
    if extra:
        content.update(extra)
    if request_id:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert an AppException into an RFC 7807 Problem Details response.

    Args:
        request: The FastAPI request object.
        exc: The application exception that was raised.

    Returns:
        JSONResponse with RFC 7807 Problem Details format.
    """
    request_id = _get_request_id(request)

    tracking.track_error(
        error_type=exc.type,
        endpoint=request.url.path,
        status_code=exc.status_code,
    )

    logger.warning(
        "Application exception occurred",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": exc.type,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )

    problem = ProblemDetails(
        type=exc.type,
        title=exc.title,
        status=exc.status_code,
        detail=exc.detail,
        instance=exc.instance or request.url.path,
    )
    return _problem_response(exc.status_code, problem, request_id, exc.extra)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors with field-level detail."""
    request_id = _get_request_id(request)

    errors = []
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        errors.append(FieldError(field=field_path, message=error["msg"], type=error["type"]))
        tracking.track_validation_error(request.url.path, field_path)

    logger.warning(
        "Request validation failed",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "error_count": len(errors),
        },
    )

    problem = ValidationProblemDetails(
        type="validation-error",
        title="Validation Error",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Request validation failed for {len(errors)} field(s)",
        instance=request.url.path,
        errors=errors,
    )
    return _problem_response(status.HTTP_422_UNPROCESSABLE_ENTITY, problem, request_id)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Logs the full traceback and returns a generic 500 without leaking
    internal details to the client.
    """
    request_id = _get_request_id(request)

    tracking.track_unhandled_exception(
        exception_type=type(exc).__name__,
        endpoint=request.url.path,
    )

    logger.error(
        "Unexpected exception occurred",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
        exc_info=True,
    )

    problem = ProblemDetails(
        type="internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing your request",
        instance=request.url.path,
    )
    return _problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, problem, request_id)


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the Problem Details handlers on the application."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers configured")
