"""Logging infrastructure.

Provides structured logging with:
- JSONL format for Loki/Elasticsearch ingestion
- Automatic context injection (job, entry_id, user_id, ...)
- QueueHandler + QueueListener for non-blocking I/O
- Lazy evaluation for expensive debug output
- OpenTelemetry trace correlation

Basic usage:
    import logging

    from notify_service.infra.logging import set_log_context

    logger = logging.getLogger(__name__)
    set_log_context(job="task-reminders")
    logger.info("Sweep started")  # Includes job="task-reminders"
"""

from notify_service.infra.logging.config import configure_logging, setup_logging, shutdown
from notify_service.infra.logging.context import (
    ContextBoundLogger,
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    get_logger,
    remove_from_log_context,
    set_log_context,
)
from notify_service.infra.logging.formatters import JSONFormatter
from notify_service.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextBoundLogger",
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "get_logger",
    "remove_from_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
