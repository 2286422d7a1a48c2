"""Error raised when a retried operation gives up."""

from __future__ import annotations


class RetryError(Exception):
    """All attempts of ``operation`` failed with retryable errors.

    Attributes:
        operation: Label of the retried call, e.g. ``twilio.send_message``
        last_exception: Error from the final attempt
        attempts: Attempts made, including the first
        total_delay: Seconds spent sleeping between attempts
    """

    def __init__(
        self,
        operation: str,
        last_exception: Exception,
        attempts: int,
        total_delay: float = 0.0,
    ) -> None:
        self.operation = operation
        self.last_exception = last_exception
        self.attempts = attempts
        self.total_delay = total_delay
        super().__init__(f"{operation} failed after {attempts} attempts: {last_exception}")
