"""Sink clients: one delivery attempt per call, retries left to the queue."""

from .base import SINK_WRITES_TOTAL, SINK_WRITE_LATENCY, record_write
from .object_store import ObjectStoreSink, content_type_for
from .webhook import WebhookSink

__all__ = [
    "SINK_WRITES_TOTAL",
    "SINK_WRITE_LATENCY",
    "record_write",
    "ObjectStoreSink",
    "WebhookSink",
    "content_type_for",
]
