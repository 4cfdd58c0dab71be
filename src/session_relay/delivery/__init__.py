"""Reliable delivery queue

In-memory, in-process queue engine shared by the upload and notification
pipelines:
- DeliveryQueue with a single cooperative drain loop
- RetryPolicy (attempt ceiling, exponential or linear backoff)
- OutcomeBus for delivered / retrying / abandoned events
- Prometheus metrics
"""

from .types import DeliverFn, DeliveryTask, QueueStatus, T
from .policy import RetryPolicy
from .outcomes import Outcome, OutcomeBus, OutcomeEvent
from .queue import DeliveryQueue

__all__ = [
    # types
    "DeliverFn",
    "DeliveryTask",
    "QueueStatus",
    "T",
    "Outcome",
    "OutcomeEvent",
    # policies
    "RetryPolicy",
    # runtime
    "DeliveryQueue",
    "OutcomeBus",
]
