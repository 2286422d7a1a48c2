"""Helper functions for recording operational metrics."""

from __future__ import annotations

import logging
from typing import Any

from notify_service.infra.metrics import business, prometheus

logger = logging.getLogger(__name__)


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the operation being retried
        attempt_number: Current attempt number (1-indexed)
    """
    business.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    """Track when all retry attempts are exhausted."""
    business.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    """Track successful operation after retries."""
    business.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()


def track_job_run(job: str, *, success: bool) -> None:
    """Track one run of a scheduled sweep.

    Example:
        track_job_run("process-queue", success=True)
    """
    business.job_runs_total.labels(job=job, status="success" if success else "error").inc()


def track_slow_query(operation: str) -> None:
    """Track a query that exceeded the slow-query threshold."""
    prometheus.database_slow_queries_total.labels(operation=operation).inc()


def track_error(
    error_type: str,
    endpoint: str,
    status_code: int,
    extra: dict[str, Any] | None = None,
) -> None:
    """Track an error occurrence.

    Example:
        track_error("invalid-cron-secret", "/api/v1/cron/process-queue", 401)
    """
    business.errors_total.labels(
        error_type=error_type,
        endpoint=endpoint,
        status_code=str(status_code),
    ).inc()

    logger.debug(
        f"Tracked error: {error_type}",
        extra={"endpoint": endpoint, "status_code": status_code, **(extra or {})},
    )


def track_validation_error(endpoint: str, field: str) -> None:
    """Track a validation error for a specific field."""
    business.validation_errors_total.labels(endpoint=endpoint, field=field).inc()


def track_unhandled_exception(exception_type: str, endpoint: str) -> None:
    """Track an unhandled exception."""
    business.exceptions_unhandled_total.labels(
        exception_type=exception_type,
        endpoint=endpoint,
    ).inc()
