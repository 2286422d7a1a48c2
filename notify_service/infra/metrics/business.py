"""Cross-cutting operational metrics (errors, retries, job runs)."""

from __future__ import annotations

from prometheus_client import Counter

from notify_service.infra.metrics.prometheus import REGISTRY

# ============================================================================
# Error Metrics
# ============================================================================

errors_total = Counter(
    "errors_total",
    "Total number of errors by type and endpoint",
    ["error_type", "endpoint", "status_code"],
    registry=REGISTRY,
)

exceptions_unhandled_total = Counter(
    "exceptions_unhandled_total",
    "Total number of unhandled exceptions",
    ["exception_type", "endpoint"],
    registry=REGISTRY,
)

validation_errors_total = Counter(
    "validation_errors_total",
    "Total number of validation errors",
    ["endpoint", "field"],
    registry=REGISTRY,
)

# ============================================================================
# Retry Metrics
# ============================================================================

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total number of retry attempts",
    ["operation", "attempt_number"],
    registry=REGISTRY,
)

retry_exhausted_total = Counter(
    "retry_exhausted_total",
    "Total number of operations that exhausted all retries",
    ["operation"],
    registry=REGISTRY,
)

retry_success_after_failure_total = Counter(
    "retry_success_after_failure_total",
    "Total number of operations that succeeded after retry",
    ["operation", "attempts_needed"],
    registry=REGISTRY,
)

# ============================================================================
# Scheduled Job Metrics
# ============================================================================

job_runs_total = Counter(
    "job_runs_total",
    "Total number of scheduled job runs by job and outcome",
    ["job", "status"],
    registry=REGISTRY,
)
