from __future__ import annotations

import asyncio
from functools import wraps
import logging
import time
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from notify_service.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

from .exceptions import RetryError
from .strategies import Backoff

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def retry(
    operation: str,
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    retry_if: Callable[[Exception], bool] | None = None,
    stop_after_delay: float | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry an async callable with exponential backoff.

    ``operation`` labels the retry metrics and log records, e.g.
    ``twilio.send_message``, ``directory.get`` or ``database.connect``.

    An exception is retried when it is an instance of ``retry_on`` and
    ``retry_if`` (if given) accepts it; anything else propagates unchanged
    on first occurrence. Running out of attempts, or of
    ``stop_after_delay`` seconds, raises RetryError wrapping the last
    exception.

    Example:
        ```python
        @retry("twilio.send_message", initial_delay=1.0, exponential_base=3.0, jitter=False)
        async def post_message() -> dict: ...
        # waits 1s, then 3s, between the three attempts
        ```
    """
    backoff = Backoff(
        initial_delay=initial_delay,
        exponential_base=exponential_base,
        max_delay=max_delay,
        jitter=jitter,
    )

    def is_retryable(exc: Exception) -> bool:
        if not isinstance(exc, retry_on):
            return False
        return retry_if is None or retry_if(exc)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            started = time.monotonic()
            total_delay = 0.0
            attempt = 1
            while True:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable(e):
                        raise

                    out_of_time = stop_after_delay is not None and time.monotonic() - started >= stop_after_delay
                    if attempt >= max_attempts or out_of_time:
                        track_retry_exhausted(operation)
                        logger.error(
                            f"{operation} failed after {attempt} attempts",
                            extra={
                                "operation": operation,
                                "attempts": attempt,
                                "total_delay": total_delay,
                                "last_exception": str(e),
                            },
                        )
                        raise RetryError(operation, e, attempt, total_delay) from e

                    delay = backoff.delay(attempt - 1)
                    total_delay += delay
                    attempt += 1
                    track_retry_attempt(operation, attempt)
                    logger.warning(
                        f"Retrying {operation} in {delay:.2f}s (attempt {attempt}/{max_attempts})",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "delay": delay,
                            "exception": str(e),
                        },
                    )
                    await asyncio.sleep(delay)
                else:
                    if attempt > 1:
                        track_retry_success(operation, attempt)
                    return result

        return async_wrapper

    return decorator
