from __future__ import annotations

from notify_service.utils.retry.decorator import retry
from notify_service.utils.retry.exceptions import RetryError
from notify_service.utils.retry.strategies import Backoff

__all__ = ["Backoff", "RetryError", "retry"]
