"""HTTP middleware for the notification API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notify_service.app.middleware.metrics import MetricsMiddleware
from notify_service.app.middleware.request_id import RequestIDMiddleware

if TYPE_CHECKING:
    from fastapi import FastAPI

    from notify_service.core.settings import LoggingSettings

logger = logging.getLogger(__name__)


def configure_middleware(app: FastAPI, log_settings: LoggingSettings) -> None:
    """Configure all middleware for the FastAPI application.

    Middleware is applied in REVERSE order (last added = first to execute).
    Execution order, outermost first:

    1. Request ID Middleware
       - Sets request_id in logging context for all downstream logs
    2. Metrics Middleware
       - Request counts, durations and in-progress gauge per route template
    """
    app.add_middleware(MetricsMiddleware)

    if log_settings.include_request_id:
        app.add_middleware(RequestIDMiddleware)

    logger.info(
        "Middleware configured",
        extra={"request_id_enabled": log_settings.include_request_id},
    )


__all__ = ["MetricsMiddleware", "RequestIDMiddleware", "configure_middleware"]
