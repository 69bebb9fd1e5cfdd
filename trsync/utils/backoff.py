"""Delay schedule for the bounded startup reconnect."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterator


@dataclass
class ExponentialBackoff:
    """Exponential delays between reconnect attempts, with optional jitter.

    Defaults suit a handful of attempts against a daemon that is still
    starting: 1s, 2s, 4s, never more than 10s.
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.1

    @classmethod
    def for_startup(cls, base_delay: float) -> ExponentialBackoff:
        """Build the schedule from the configured startup retry delay.

        A zero base disables both waiting and jitter.
        """
        if base_delay <= 0:
            return cls(base_delay=0.0, jitter=0.0)
        return cls(base_delay=base_delay, max_delay=max(base_delay, cls.max_delay))

    def next_delay(self, retries: int) -> float:
        """Delay before retry number ``retries`` (0-based)."""
        delay = min(self.base_delay * (self.multiplier ** max(0, retries)), self.max_delay)
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = max(0.0, delay - spread) + random.random() * (2 * spread)
        return delay

    def delays(self, attempts: int) -> Iterator[float]:
        """Yield the waits before each of ``attempts`` attempts.

        The first attempt runs immediately.
        """
        for attempt in range(attempts):
            yield self.next_delay(attempt - 1) if attempt else 0.0
