"""
session-relay

Delivers finished session recordings to S3-compatible object storage and
session lifecycle events to an HTTP webhook, with bounded, backed-off
retries and a drain-on-shutdown guarantee.

Usage:
    from session_relay import DeliveryPipeline, ConnectionContext

    async with DeliveryPipeline() as pipeline:
        ctx = ConnectionContext.from_token(token, connection_id="c1")
        await pipeline.on_session_open("s1", ctx)
        await pipeline.on_session_close("s1", ctx)
"""

__version__ = "1.0.0"

from .config import Settings, get_settings
from .models import ConnectionContext, RecordingInfo, WebhookEvent
from .delivery import DeliveryQueue, DeliveryTask, QueueStatus, RetryPolicy
from .pipeline import DeliveryPipeline, UploadRequest

__all__ = [
    "Settings",
    "get_settings",
    "ConnectionContext",
    "RecordingInfo",
    "WebhookEvent",
    "DeliveryQueue",
    "DeliveryTask",
    "QueueStatus",
    "RetryPolicy",
    "DeliveryPipeline",
    "UploadRequest",
]
