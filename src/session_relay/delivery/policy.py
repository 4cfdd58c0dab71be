from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Literal

BackoffMode = Literal["exponential", "linear"]


@dataclass
class RetryPolicy:
    """Attempt ceiling and backoff curve for one delivery queue.

    exponential: min(initial * multiplier**attempts, max)
    linear:      min(initial * attempts, max)

    serialize_retries makes the drain loop sleep through a failed task's
    backoff instead of moving on to other eligible tasks.
    """

    max_attempts: int = 3
    initial_backoff_ms: int = 1000
    max_backoff_ms: int = 30000
    mode: BackoffMode = "exponential"
    backoff_multiplier: float = 2.0
    jitter: bool = False
    serialize_retries: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        if self.initial_backoff_ms < 0 or self.max_backoff_ms < 0:
            raise ValueError("backoff values must be >= 0")

    def next_backoff_ms(self, attempts: int) -> int:
        """Backoff after the given number of failed attempts (1-based)."""
        if self.mode == "linear":
            base = self.initial_backoff_ms * attempts
        else:
            base = self.initial_backoff_ms * (self.backoff_multiplier**attempts)
        base = min(int(base), self.max_backoff_ms)
        if self.jitter:
            return int(base * random.uniform(0.5, 1.0))
        return base

    def next_backoff_sec(self, attempts: int) -> float:
        return self.next_backoff_ms(attempts) / 1000.0

    @classmethod
    def for_notifications(
        cls, max_attempts: int = 3, base_ms: int = 1000, cap_ms: int = 30000, jitter: bool = False
    ) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, initial_backoff_ms=base_ms, max_backoff_ms=cap_ms, jitter=jitter)

    @classmethod
    def for_uploads(cls, max_attempts: int = 3, step_ms: int = 5000) -> "RetryPolicy":
        # escalating fixed step; the whole queue waits out each retry
        return cls(
            max_attempts=max_attempts,
            initial_backoff_ms=step_ms,
            max_backoff_ms=step_ms * max_attempts,
            mode="linear",
            serialize_retries=True,
        )
