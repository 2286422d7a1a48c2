"""Prometheus metrics for the notification engine.

Usage:
    from notify_service.features.notifications.metrics import (
        notification_enqueued_total,
        notification_processed_total,
    )

    notification_enqueued_total.labels(kind="reminder").inc()
    notification_processed_total.labels(kind="reminder", outcome="sent").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from notify_service.infra.metrics.prometheus import (
    DEFAULT_LATENCY_BUCKETS,
    REGISTRY,
    SWEEP_DURATION_BUCKETS,
)

# =============================================================================
# Queue Lifecycle Metrics
# =============================================================================

notification_enqueued_total = Counter(
    "notification_enqueued_total",
    "Total number of queue entries created",
    labelnames=["kind"],
    registry=REGISTRY,
)
"""
Labels:
    kind: reminder, status_change or daily_digest
"""

notification_processed_total = Counter(
    "notification_processed_total",
    "Total number of queue entries handled by the processor",
    labelnames=["kind", "outcome"],
    registry=REGISTRY,
)
"""
Labels:
    kind: Notification kind
    outcome: sent, failed, retry or deferred
"""

notification_deferred_total = Counter(
    "notification_deferred_total",
    "Total number of deliveries pushed later without consuming an attempt",
    labelnames=["reason"],
    registry=REGISTRY,
)
"""
Labels:
    reason: quiet_hours or daily_limit
"""

notification_immediate_total = Counter(
    "notification_immediate_total",
    "Status change notifications delivered without queueing",
    labelnames=["outcome"],
    registry=REGISTRY,
)

notification_last_batch_size = Gauge(
    "notification_last_batch_size",
    "Number of due entries picked up by the most recent processor pass",
    registry=REGISTRY,
)

notification_sweep_duration_seconds = Histogram(
    "notification_sweep_duration_seconds",
    "Duration of one producer or processor pass",
    labelnames=["job"],
    buckets=SWEEP_DURATION_BUCKETS,
    registry=REGISTRY,
)

# =============================================================================
# Gateway Metrics
# =============================================================================

whatsapp_send_total = Counter(
    "whatsapp_send_total",
    "Total number of gateway sends by outcome",
    labelnames=["outcome"],
    registry=REGISTRY,
)
"""
Labels:
    outcome: success, transient_error, permanent_error or not_configured
"""

whatsapp_send_duration_seconds = Histogram(
    "whatsapp_send_duration_seconds",
    "Duration of a gateway send including internal retries",
    buckets=DEFAULT_LATENCY_BUCKETS + (15.0, 30.0),
    registry=REGISTRY,
)
