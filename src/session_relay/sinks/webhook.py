"""
Webhook client for lifecycle notifications.

One send() is one POST with the event's JSON body; retrying is the
notification queue's job, not this client's.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

import httpx
from loguru import logger

from session_relay.errors import WebhookHTTPError, map_sink_error
from session_relay.models import WebhookEvent
from session_relay.resolver import WebhookDestination

from .base import record_write

DEFAULT_TIMEOUT = 10.0
MAX_REDIRECTS = 3


class WebhookSink:
    """POST events to a resolved webhook destination.

    Example:
        sink = WebhookSink(resolve_webhook(settings))
        await sink.start()
        await sink.send(event)   # raises on transport error or non-2xx
        await sink.stop()
    """

    name = "webhook"

    def __init__(
        self,
        destination: WebhookDestination,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
    ):
        self.destination = destination
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
        )
        logger.debug(f"Webhook client started for {self.destination.url}")

    async def stop(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.debug("Webhook client stopped")

    async def __aenter__(self) -> "WebhookSink":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def send(self, event: Union[WebhookEvent, Dict[str, Any]]) -> None:
        body = event.to_json() if isinstance(event, WebhookEvent) else event
        if self._client is None:
            await self.start()

        with record_write(self.name):
            try:
                response = await self._client.post(
                    self.destination.url,
                    json=body,
                    headers=dict(self.destination.headers),
                    auth=self.destination.auth,
                )
            except Exception as e:
                raise map_sink_error(e) from e

            if not 200 <= response.status_code < 300:
                raise WebhookHTTPError(response.status_code, getattr(response, "reason_phrase", ""))

        logger.info(f"Webhook sent: {body.get('event')} ({response.status_code})")

    async def test(self) -> tuple[bool, Optional[str]]:
        """Send a synthetic 'test' event. Returns (ok, error message)."""
        event = WebhookEvent(event="test", session_id="test-session-id", token_meta={"test": True})
        try:
            await self.send(event)
            return True, None
        except Exception as e:
            return False, str(e)
