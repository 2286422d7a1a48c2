"""RFC 7807 Problem Details schema for error responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FieldError(BaseModel):
    """One failing field in a validation problem."""

    field: str
    message: str
    type: str


class ProblemDetails(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    See: https://datatracker.ietf.org/doc/html/rfc7807

    Example:
        return JSONResponse(
            status_code=404,
            content=ProblemDetails(
                type="user-not-found",
                title="Not Found",
                status=404,
                detail="User not found",
                instance="/api/v1/users/abc123/notifications/test",
            ).model_dump(exclude_none=True),
        )
    """

    type: str = Field(
        default="about:blank",
        min_length=1,
        max_length=200,
        description="URI reference identifying the problem type",
    )
    title: str = Field(
        min_length=1, max_length=200, description="Short, human-readable summary of the problem"
    )
    status: int = Field(ge=100, le=599, description="HTTP status code")
    detail: str | None = Field(
        default=None,
        max_length=2000,
        description="Human-readable explanation specific to this occurrence",
    )
    instance: str | None = Field(
        default=None,
        max_length=500,
        description="URI reference identifying the specific occurrence",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "invalid-cron-secret",
                "title": "Unauthorized",
                "status": 401,
                "detail": "Invalid or missing x-cron-secret header",
                "instance": "/api/v1/cron/process-queue",
            }
        },
        str_strip_whitespace=True,
    )


class ValidationProblemDetails(ProblemDetails):
    """Problem details carrying per-field validation errors."""

    errors: list[FieldError] = Field(default_factory=list)
