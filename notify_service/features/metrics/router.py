"""Prometheus metrics endpoint.

Endpoints:
    GET /metrics - Prometheus scrape endpoint

Metrics Exposed:
    Queue:
        - notification_enqueued_total - Entries created by kind
        - notification_processed_total - Processor outcomes by kind
        - notification_deferred_total - Quiet-hour and daily-limit deferrals
        - notification_sweep_duration_seconds - Producer and processor pass time

    Delivery:
        - whatsapp_send_total - Gateway sends by outcome
        - whatsapp_send_duration_seconds - Gateway latency including retries

    Operations:
        - job_runs_total - Scheduled job runs by outcome
        - retry_attempts_total - Retry decorator activity
        - database_query_duration_seconds - Query time with trace exemplars
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from notify_service.infra.metrics.prometheus import REGISTRY

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def metrics() -> Response:
    """Expose the service registry in Prometheus text format."""
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
