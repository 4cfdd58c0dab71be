from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")

# One delivery attempt. Raises on failure; the return value is ignored.
DeliverFn = Callable[[T], Awaitable[object]]


@dataclass
class DeliveryTask(Generic[T]):
    """A payload plus its retry bookkeeping.

    Attributes:
        payload: Sink-specific item (upload request, webhook event)
        max_attempts: Ceiling on total delivery attempts
        attempts: Failed attempts so far
        next_eligible_at: Loop time before which the task is not retried
        last_error: Message of the most recent failure
    """

    payload: T
    max_attempts: int
    attempts: int = 0
    next_eligible_at: float = 0.0
    last_error: str | None = None

    def is_eligible(self, now: float) -> bool:
        return now >= self.next_eligible_at

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


@dataclass(frozen=True)
class QueueStatus:
    """Read-only snapshot of a delivery queue."""

    name: str
    pending: int
    draining: bool

    @property
    def idle(self) -> bool:
        return self.pending == 0 and not self.draining
