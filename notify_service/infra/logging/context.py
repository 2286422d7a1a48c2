"""Context management for structured logging.

Provides automatic context injection into log records using contextvars,
so identifiers such as the sweep name, entry id or user id are included in
every log line emitted while a job or request runs.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

# Each async task gets its own copy automatically
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Set logging context for the current async task.

    Args:
        **kwargs: Key-value pairs to add to logging context.

    Example:
        ```python
        set_log_context(job="process-queue")
        logger.info("Sweep started")  # Includes job="process-queue"
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current async task.

    Useful in tests or in sweeps that rebind context per entry.
    """
    _log_context.set({})


def remove_from_log_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    current = _log_context.get().copy()
    for key in keys:
        current.pop(key, None)
    _log_context.set(current)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the contextvars log context into LogRecord.

    Applied to the root logger so all loggers benefit from it; formatters
    (especially JSONFormatter) pick the fields up without code changes.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record.

        Args:
            record: The log record to enhance with context.

        Returns:
            True (always allow the record to be logged).
        """
        for key, value in _log_context.get().items():
            # Don't overwrite existing attributes
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class ContextBoundLogger(logging.LoggerAdapter):
    """Logger adapter that binds context to a logger instance.

    Example:
        ```python
        logger = get_logger(__name__, component="gateway")
        entry_logger = logger.bind(entry_id="0193...")
        entry_logger.info("Dispatching")  # Includes component and entry_id
        ```
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, context)

    def bind(self, **context: Any) -> ContextBoundLogger:
        """Create new logger with additional bound context."""
        merged = {**self.extra, **context}
        return ContextBoundLogger(self.logger, **merged)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Merge bound context with any extra fields passed to the log call."""
        extra = kwargs.get("extra", {})
        kwargs["extra"] = {**self.extra, **extra}
        return msg, kwargs


def get_logger(name: str, **context: Any) -> ContextBoundLogger:
    """Get logger with bound context.

    Args:
        name: Logger name.
        **context: Context to add to all log messages.

    Returns:
        Logger adapter with context.
    """
    return ContextBoundLogger(logging.getLogger(name), **context)
