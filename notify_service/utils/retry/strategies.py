from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Backoff:
    """Exponential wait between attempts: ``initial_delay * base**n``, capped.

    With ``initial_delay=1`` and ``exponential_base=3`` the waits are 1s,
    3s, 9s. Jitter scales each wait by a random factor in [0.5, 1.5).
    """

    initial_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: float = 60.0
    jitter: bool = True

    def delay(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (0 for the first retry)."""
        delay = min(self.initial_delay * self.exponential_base**retry_number, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay
