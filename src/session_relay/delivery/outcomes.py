"""
Delivery outcome notifications.

Each DeliveryQueue owns an OutcomeBus. Subscribers (the pipeline, tests,
logging hooks) react to tasks being delivered, rescheduled or abandoned
without the queue knowing anything about what its payloads are.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from loguru import logger


class Outcome(str, Enum):
    """Result of one delivery attempt as seen by the queue."""

    DELIVERED = "delivered"
    RETRYING = "retrying"  # failed, rescheduled with backoff
    ABANDONED = "abandoned"  # failed, attempt ceiling reached


@dataclass(frozen=True)
class OutcomeEvent:
    """Immutable outcome of one delivery attempt.

    Attributes:
        queue: Name of the queue that attempted the task
        outcome: DELIVERED, RETRYING or ABANDONED
        payload: The task payload
        attempts: Failed attempts so far (0 when delivered first time)
        max_attempts: The task's attempt ceiling
        error: Failure message, if any
        backoff_sec: Delay before the next attempt (RETRYING only)
    """

    queue: str
    outcome: Outcome
    payload: Any
    attempts: int
    max_attempts: int
    error: str | None = None
    backoff_sec: float | None = None

    @property
    def final(self) -> bool:
        return self.outcome != Outcome.RETRYING


class OutcomeSubscriber(Protocol):
    """Async callable accepting an OutcomeEvent."""

    async def __call__(self, event: OutcomeEvent) -> None:
        ...


class OutcomeBus:
    """In-process pub/sub for delivery outcomes.

    One subscriber's failure does not affect others or the drain loop.
    Not shared between queues; build one per queue instance.

    Example:
        bus = OutcomeBus()

        async def on_outcome(event: OutcomeEvent):
            if event.outcome == Outcome.DELIVERED:
                await cleanup(event.payload)

        bus.subscribe(on_outcome)
    """

    def __init__(self) -> None:
        self._subs: list[OutcomeSubscriber] = []

    def subscribe(self, callback: OutcomeSubscriber) -> None:
        if callback not in self._subs:
            self._subs.append(callback)
            logger.debug(f"Outcome subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: OutcomeSubscriber) -> None:
        """Remove a subscriber. No-op if it was never added."""
        try:
            self._subs.remove(callback)
        except ValueError:
            pass

    async def publish(self, event: OutcomeEvent) -> None:
        """Call every subscriber in registration order; errors are logged."""
        if not self._subs:
            return

        for callback in list(self._subs):
            try:
                await callback(event)
            except Exception as exc:
                logger.warning(
                    f"Outcome subscriber error on {event.queue}/{event.outcome.value}: "
                    f"{type(exc).__name__}: {exc}"
                )

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)
