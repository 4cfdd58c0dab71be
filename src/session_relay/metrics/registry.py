"""
Ensures delivery and sink metrics are visible in Prometheus global REGISTRY.
Simply import this module at app startup.
"""

from prometheus_client import Counter, Gauge

from session_relay.sinks.base import SINK_WRITES_TOTAL, SINK_WRITE_LATENCY  # noqa: F401


# --- Delivery queue metrics ---

DELIVERY_ATTEMPTS_TOTAL = Counter(
    "delivery_attempts_total",
    "Delivery attempts made by a queue's drain loop",
    ["queue", "outcome"],
)

DELIVERY_ABANDONED_TOTAL = Counter(
    "delivery_abandoned_total",
    "Tasks dropped after reaching their attempt ceiling",
    ["queue"],
)

DELIVERY_QUEUE_PENDING = Gauge(
    "delivery_queue_pending",
    "Tasks currently held by a delivery queue",
    ["queue"],
)


class MetricsRegistry:
    """Centralized access to relay metrics."""

    delivery_attempts_total = DELIVERY_ATTEMPTS_TOTAL
    delivery_abandoned_total = DELIVERY_ABANDONED_TOTAL
    delivery_queue_pending = DELIVERY_QUEUE_PENDING
    sink_writes_total = SINK_WRITES_TOTAL
    sink_write_latency = SINK_WRITE_LATENCY


# Singleton instance
metrics_registry = MetricsRegistry()
