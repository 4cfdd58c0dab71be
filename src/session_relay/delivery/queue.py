from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Generic, Optional

from loguru import logger

from session_relay.metrics.registry import (
    DELIVERY_ABANDONED_TOTAL,
    DELIVERY_ATTEMPTS_TOTAL,
    DELIVERY_QUEUE_PENDING,
)

from .outcomes import Outcome, OutcomeBus, OutcomeEvent
from .policy import RetryPolicy
from .types import DeliverFn, DeliveryTask, QueueStatus, T


class DeliveryQueue(Generic[T]):
    """In-memory FIFO-with-requeue delivery queue with a single drain loop.

    enqueue() never blocks: it appends the task and starts a drain loop on
    the running event loop unless one is already active. The drain loop
    attempts eligible tasks in order, re-appends failed ones to the tail
    with a backoff gate, and drops a task once its attempt ceiling is hit.
    It exits only when it observes the queue empty.

    Example:
        queue = DeliveryQueue[WebhookEvent]("notifications", sink.send, RetryPolicy())
        queue.enqueue(event)
        ...
        await queue.shutdown()  # returns once every task is delivered or abandoned
    """

    def __init__(
        self,
        name: str,
        deliver: DeliverFn,
        policy: Optional[RetryPolicy] = None,
        *,
        poll_interval: float = 1.0,
        bus: Optional[OutcomeBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        self.name = name
        self._deliver = deliver
        self._policy = policy or RetryPolicy()
        self._poll_interval = poll_interval
        self._bus = bus or OutcomeBus()
        self._clock = clock

        self._tasks: Deque[DeliveryTask[T]] = deque()
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def outcomes(self) -> OutcomeBus:
        return self._bus

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def draining(self) -> bool:
        return self._draining

    def __len__(self) -> int:
        return len(self._tasks)

    def status(self) -> QueueStatus:
        return QueueStatus(name=self.name, pending=len(self._tasks), draining=self._draining)

    def enqueue(self, payload: T) -> DeliveryTask[T]:
        """Append a fresh task and make sure a drain loop is running."""
        task = DeliveryTask(
            payload=payload,
            max_attempts=self._policy.max_attempts,
            next_eligible_at=self._clock(),
        )
        self._tasks.append(task)
        self._update_gauge()
        self._kick()
        return task

    async def shutdown(self, timeout: float | None = None) -> bool:
        """Wait until no task is pending and no drain loop is active.

        Returns False only when an explicit timeout expires first; the
        remaining tasks stay queued. A drain loop that died while work is
        still pending is restarted on the next poll.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        while True:
            self._kick()
            if self.status().idle:
                break
            if deadline is not None and loop.time() >= deadline:
                logger.warning(
                    f"Queue {self.name} shutdown timed out with {len(self._tasks)} pending "
                    f"(draining={self._draining})"
                )
                return False
            await asyncio.sleep(self._poll_interval)

        logger.debug(f"Queue {self.name} drained")
        return True

    # --------------- drain loop

    def _kick(self) -> None:
        if self._draining or not self._tasks:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"Queue {self.name}: no running event loop, drain deferred")
            return

        # check-then-set with no await in between
        self._draining = True
        self._drain_task = loop.create_task(self._process_queue(), name=f"drain-{self.name}")
        self._drain_task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Queue {self.name} drain loop crashed: {type(exc).__name__}: {exc}")

    async def _process_queue(self) -> None:
        try:
            while self._tasks:
                task = self._tasks.popleft()
                now = self._clock()

                if not task.is_eligible(now):
                    self._tasks.append(task)
                    if not any(t.is_eligible(now) for t in self._tasks):
                        earliest = min(t.next_eligible_at for t in self._tasks)
                        await asyncio.sleep(min(self._poll_interval, max(0.0, earliest - now)))
                    continue

                await self._attempt(task)
        finally:
            self._draining = False
            self._drain_task = None
            self._update_gauge()

    async def _attempt(self, task: DeliveryTask[T]) -> None:
        try:
            await self._deliver(task.payload)
        except asyncio.CancelledError:
            # interrupted mid-attempt; the next drain loop retries it first
            self._tasks.appendleft(task)
            self._update_gauge()
            raise
        except Exception as exc:
            await self._on_failure(task, exc)
            return

        DELIVERY_ATTEMPTS_TOTAL.labels(queue=self.name, outcome=Outcome.DELIVERED.value).inc()
        logger.debug(f"Queue {self.name}: delivered after {task.attempts + 1} attempt(s)")
        self._update_gauge()
        await self._bus.publish(
            OutcomeEvent(
                queue=self.name,
                outcome=Outcome.DELIVERED,
                payload=task.payload,
                attempts=task.attempts,
                max_attempts=task.max_attempts,
            )
        )

    async def _on_failure(self, task: DeliveryTask[T], exc: Exception) -> None:
        task.attempts += 1
        task.last_error = f"{type(exc).__name__}: {exc}"

        if task.exhausted:
            DELIVERY_ATTEMPTS_TOTAL.labels(queue=self.name, outcome=Outcome.ABANDONED.value).inc()
            DELIVERY_ABANDONED_TOTAL.labels(queue=self.name).inc()
            logger.error(
                f"Queue {self.name}: giving up after {task.attempts}/{task.max_attempts} "
                f"attempts: {task.last_error}"
            )
            self._update_gauge()
            await self._bus.publish(
                OutcomeEvent(
                    queue=self.name,
                    outcome=Outcome.ABANDONED,
                    payload=task.payload,
                    attempts=task.attempts,
                    max_attempts=task.max_attempts,
                    error=task.last_error,
                )
            )
            return

        backoff = self._policy.next_backoff_sec(task.attempts)
        task.next_eligible_at = self._clock() + backoff
        self._tasks.append(task)
        self._update_gauge()

        DELIVERY_ATTEMPTS_TOTAL.labels(queue=self.name, outcome=Outcome.RETRYING.value).inc()
        logger.warning(
            f"Queue {self.name}: attempt {task.attempts}/{task.max_attempts} failed "
            f"({task.last_error}), retrying in {backoff:.2f}s"
        )
        await self._bus.publish(
            OutcomeEvent(
                queue=self.name,
                outcome=Outcome.RETRYING,
                payload=task.payload,
                attempts=task.attempts,
                max_attempts=task.max_attempts,
                error=task.last_error,
                backoff_sec=backoff,
            )
        )

        if self._policy.serialize_retries and backoff > 0:
            await asyncio.sleep(backoff)

    def _update_gauge(self) -> None:
        DELIVERY_QUEUE_PENDING.labels(queue=self.name).set(len(self._tasks))
