"""Application exceptions rendered as RFC 7807 problem details.

Each subclass pins an HTTP status and a default problem ``type``; call sites
pass a detail message and, where useful, a more specific type such as
``user-not-found`` or ``gateway-not-configured``.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, ClassVar


class AppException(Exception):
    """Base class for errors that surface through the HTTP API.

    Attributes:
        status_code: HTTP status code for the response.
        detail: Human-readable explanation of this occurrence.
        type: Problem type identifier.
        title: Short summary of the problem type.
        instance: URI reference of the failing request, filled in by the handler when unset.
        extra: Additional members merged into the problem body.

    Example:
        raise NotFoundException(
            detail="User abc123 not found",
            type="user-not-found",
            extra={"user_id": "abc123"},
        )
    """

    status_code: ClassVar[int] = 500
    default_type: ClassVar[str] = "about:blank"

    def __init__(
        self,
        detail: str,
        type: str | None = None,
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.detail = detail
        self.type = type or self.default_type
        self.title = title or HTTPStatus(self.status_code).phrase
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, type={self.type!r}, detail={self.detail!r})"


class BadRequestException(AppException):
    """The request is well-formed but cannot be acted on, e.g. no verified address."""

    status_code = 400
    default_type = "bad-request"


class UnauthorizedException(AppException):
    """Missing or wrong credentials, such as the ``x-cron-secret`` header."""

    status_code = 401
    default_type = "unauthorized"


class NotFoundException(AppException):
    status_code = 404
    default_type = "not-found"


class InternalServerException(AppException):
    """Server-side misconfiguration or a job that failed while running."""

    status_code = 500
    default_type = "internal-server-error"


class BadGatewayException(AppException):
    """The WhatsApp provider rejected or failed a delivery.

    The provider's reason is the ``detail``; ``extra`` carries ``permanent``.
    """

    status_code = 502
    default_type = "bad-gateway"


class ServiceUnavailableException(AppException):
    """A collaborator the request needs is not wired or not configured."""

    status_code = 503
    default_type = "service-unavailable"
