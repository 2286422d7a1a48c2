"""Metrics middleware for HTTP request instrumentation with trace correlation."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware

from notify_service.infra.metrics.prometheus import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request, Response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect HTTP metrics with trace correlation via exemplars.

    Uses route path templates for low cardinality labels and adds an
    X-Process-Time header with the request duration.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = request.url.path
        http_requests_in_progress.labels(method=method, endpoint=path).inc()

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Process-Time"] = str(time.perf_counter() - start_time)
            return response
        finally:
            duration = time.perf_counter() - start_time
            endpoint = _route_template(request)

            span_context = trace.get_current_span().get_span_context()
            exemplar = (
                {"trace_id": format(span_context.trace_id, "032x")}
                if span_context.is_valid
                else None
            )

            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                duration, exemplar=exemplar
            )
            http_requests_total.labels(
                method=method, endpoint=endpoint, status=status_code
            ).inc(exemplar=exemplar)
            http_requests_in_progress.labels(method=method, endpoint=path).dec()


def _route_template(request: Request) -> str:
    """Matched route path, e.g. "/api/v1/users/{user_id}/notifications/history".

    Routing fills in the scope downstream, so this is only meaningful once
    the response has been produced. Unmatched requests fall back to the raw path.
    """
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return route.path
    return request.url.path
