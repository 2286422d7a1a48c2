"""Prometheus metrics infrastructure."""

from notify_service.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
