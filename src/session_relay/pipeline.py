"""
Pipeline orchestrator.

Turns session lifecycle callbacks from the tunnel into work on two delivery
queues: recording uploads to object storage and webhook notifications.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from loguru import logger

from .compression import compress
from .config import Settings, get_settings
from .delivery import DeliveryQueue, DeliveryTask, Outcome, OutcomeEvent, RetryPolicy
from .errors import ResolutionError, StorageNotConfigured
from .models import RESERVED_EVENT_FIELDS, ConnectionContext, EventKind, RecordingInfo, WebhookEvent
from .resolver import (
    StorageDestination,
    connection_settings,
    recording_filename,
    recording_path,
    resolve_storage,
    resolve_webhook,
)
from .sinks import ObjectStoreSink, WebhookSink
from .utils import redact


@dataclass
class UploadRequest:
    """Payload of the upload queue."""

    path: Path
    session_id: str
    destination: StorageDestination
    context: ConnectionContext


class DeliveryPipeline:
    """Owns both delivery queues for one relay instance.

    Nothing here is process-global: several pipelines (e.g. one per tenant)
    can live side by side.

    Example:
        async with DeliveryPipeline(settings) as pipeline:
            info = await pipeline.on_session_open(sid, ctx)
            ...
            await pipeline.on_session_close(sid, ctx)
        # exiting drains both queues
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        storage: Optional[ObjectStoreSink] = None,
        webhook: Optional[WebhookSink] = None,
        upload_policy: Optional[RetryPolicy] = None,
        notify_policy: Optional[RetryPolicy] = None,
        poll_interval: Optional[float] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.storage = storage or ObjectStoreSink.from_settings(s)
        if webhook is None and s.webhook_enabled:
            webhook = WebhookSink(resolve_webhook(s), timeout=s.WEBHOOK_TIMEOUT_SEC)
        self.webhook = webhook

        interval = poll_interval if poll_interval is not None else s.QUEUE_POLL_INTERVAL_SEC
        self.uploads = DeliveryQueue[UploadRequest](
            "uploads",
            self._deliver_upload,
            upload_policy
            or RetryPolicy.for_uploads(max_attempts=s.UPLOAD_MAX_ATTEMPTS, step_ms=s.UPLOAD_RETRY_STEP_MS),
            poll_interval=interval,
        )
        self.notifications = DeliveryQueue[WebhookEvent](
            "notifications",
            self._deliver_notification,
            notify_policy
            or RetryPolicy.for_notifications(
                max_attempts=s.NOTIFY_MAX_ATTEMPTS,
                base_ms=s.NOTIFY_BACKOFF_BASE_MS,
                cap_ms=s.NOTIFY_BACKOFF_CAP_MS,
                jitter=s.NOTIFY_BACKOFF_JITTER,
            ),
            poll_interval=interval,
        )
        self.uploads.outcomes.subscribe(self._on_upload_outcome)

        self._recordings: Dict[str, RecordingInfo] = {}

    # --------------- context management

    async def __aenter__(self) -> "DeliveryPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def start(self) -> None:
        if self.webhook is not None:
            await self.webhook.start()
        logger.info(
            f"Delivery pipeline started (storage={self.settings.RECORDINGS_STORAGE}, "
            f"uploads={'on' if self.storage.available else 'off'}, "
            f"webhook={'on' if self.webhook_enabled else 'off'})"
        )

    async def shutdown(self, timeout: float | None = None) -> bool:
        """Drain both queues, then release sink clients.

        Uploads go first: a delivered upload enqueues a notification.
        """
        logger.info("Draining delivery queues...")
        ok = await self.uploads.shutdown(timeout)
        ok = await self.notifications.shutdown(timeout) and ok
        if self.webhook is not None:
            await self.webhook.stop()
        logger.info("Delivery pipeline stopped")
        return ok

    @property
    def webhook_enabled(self) -> bool:
        return self.webhook is not None

    @property
    def uploads_enabled(self) -> bool:
        return self.settings.RECORDINGS_STORAGE == "s3"

    def status(self) -> Dict[str, Any]:
        return {
            "uploads": self.uploads.status(),
            "notifications": self.notifications.status(),
            "storage_available": self.storage.available,
            "webhook_enabled": self.webhook_enabled,
            "recordings": len(self._recordings),
        }

    # --------------- enqueue API

    def enqueue_upload(
        self, path: Union[str, os.PathLike], context: ConnectionContext, session_id: str
    ) -> DeliveryTask[UploadRequest]:
        """Resolve the destination now and queue the upload.

        Raises StorageNotConfigured without a storage client and
        NoDestinationConfigured when no bucket can be determined; the item
        never enters the queue in either case.
        """
        if not self.storage.available:
            raise StorageNotConfigured("Object storage credentials not configured")
        path = Path(path)
        destination = resolve_storage(context, self.settings, path)
        logger.debug(f"Queueing upload of {path.name} to {destination.uri}")
        return self.uploads.enqueue(
            UploadRequest(path=path, session_id=session_id, destination=destination, context=context)
        )

    def enqueue_notification(
        self,
        event_kind: EventKind,
        context: ConnectionContext,
        session_id: str,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Optional[DeliveryTask[WebhookEvent]]:
        """Queue a webhook event with redacted metadata. No-op when webhooks are off.

        extra keys become top-level body fields; the fixed event fields
        (event, timestamp, session_id, token_meta) cannot be overridden.
        """
        if self.webhook is None:
            return None

        fields = redact(dict(extra or {}))
        clashing = RESERVED_EVENT_FIELDS.intersection(fields)
        if clashing:
            logger.warning(f"Ignoring reserved event fields in extra data: {sorted(clashing)}")
            fields = {k: v for k, v in fields.items() if k not in RESERVED_EVENT_FIELDS}

        event = WebhookEvent(
            **fields,
            event=event_kind,
            session_id=session_id,
            token_meta=redact(dict(context.meta)),
        )
        return self.notifications.enqueue(event)

    # --------------- lifecycle hooks

    async def on_session_open(self, session_id: str, context: ConnectionContext) -> Optional[RecordingInfo]:
        try:
            self.enqueue_notification("session_started", context, session_id)
            if context.recording is True or self.settings.RECORDINGS_ENABLED:
                info = self.start_recording(session_id, context)
                if info is not None:
                    logger.info(f"Recording started: {info.filename}")
                return info
        except Exception as e:
            logger.error(f"Error handling session open {session_id}: {type(e).__name__}: {e}")
        return None

    async def on_session_close(
        self,
        session_id: str,
        context: ConnectionContext,
        recording: Union[str, os.PathLike, None] = None,
    ) -> Optional[Path]:
        """Notify session end and hand the finished recording to the upload queue."""
        try:
            self.enqueue_notification("session_ended", context, session_id)

            info = self._recordings.pop(session_id, None)
            path = Path(recording) if recording is not None else (info.path if info else None)
            if path is None:
                return None
            return await self.finish_recording(path, context, session_id)
        except Exception as e:
            logger.error(f"Error handling session close {session_id}: {type(e).__name__}: {e}")
            return None

    def start_recording(self, session_id: str, context: ConnectionContext) -> Optional[RecordingInfo]:
        try:
            filename = recording_filename(self.settings.RECORDINGS_FILENAME, context, session_id)
            path = recording_path(self.settings, filename)
            path.parent.mkdir(parents=True, exist_ok=True)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start recording for {session_id}: {e}")
            return None

        info = RecordingInfo(path=path, filename=filename)
        self._recordings[session_id] = info
        return info

    async def finish_recording(
        self, path: Path, context: ConnectionContext, session_id: str
    ) -> Optional[Path]:
        if not path.exists():
            logger.warning(f"Recording file not found: {path}")
            return None

        processed = await compress(path, self.settings.RECORDINGS_COMPRESSION_FORMAT)

        if self.uploads_enabled:
            try:
                self.enqueue_upload(processed, context, session_id)
            except ResolutionError as e:
                logger.error(f"Not uploading {processed.name}: {e}")
        return processed

    def connection_settings(self, token: Mapping[str, Any]) -> Dict[str, Any]:
        return connection_settings(token, self.settings)

    # --------------- queue callbacks

    async def _deliver_upload(self, request: UploadRequest) -> None:
        await self.storage.upload(request.path, request.destination)

    async def _deliver_notification(self, event: WebhookEvent) -> None:
        await self.webhook.send(event)

    async def _on_upload_outcome(self, event: OutcomeEvent) -> None:
        request: UploadRequest = event.payload

        if event.outcome == Outcome.ABANDONED:
            logger.error(f"Upload of {request.path} abandoned, local copy kept")
            return
        if event.outcome != Outcome.DELIVERED:
            return

        if self.settings.RECORDINGS_DELETE_LOCAL_AFTER_UPLOAD:
            try:
                request.path.unlink()
            except OSError as e:
                logger.warning(f"Failed to delete local recording {request.path}: {e}")

        self.enqueue_notification(
            "recording_saved",
            request.context,
            request.session_id,
            extra={"recording": {"bucket": request.destination.bucket, "key": request.destination.key}},
        )
