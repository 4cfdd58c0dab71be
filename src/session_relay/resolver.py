"""
Destination resolution.

Pure functions deciding where an item goes: the (bucket, key) pair for a
recording upload, the (url, headers, auth) triple for a webhook event, plus
the recording file name and RDP drive path built from the same templates.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

from . import __version__
from .config import Settings
from .errors import NoDestinationConfigured
from .models import ConnectionContext
from .utils import interpolate, path_safe_timestamp, sanitize_path

DestinationKind = Literal["upload", "webhook"]

USER_AGENT = f"session-relay/{__version__}"
FALLBACK_FILENAME = "recording.guac"


@dataclass(frozen=True)
class StorageDestination:
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class WebhookDestination:
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    auth: Optional[Tuple[str, str]] = None  # basic auth (username, password)


Destination = Union[StorageDestination, WebhookDestination]


# --------------- object storage


def resolve_bucket(context: ConnectionContext, settings: Settings) -> str:
    """Per-connection override first, then the configured default."""
    if context.bucket:
        return context.bucket
    if settings.S3_DEFAULT_BUCKET:
        return settings.S3_DEFAULT_BUCKET
    raise NoDestinationConfigured("No storage bucket specified in connection or configuration")


def resolve_key(artifact_path: Union[str, os.PathLike], context: ConnectionContext, settings: Settings) -> str:
    filename = os.path.basename(os.fspath(artifact_path))
    template = settings.S3_KEY_TEMPLATE
    if not template:
        template = "recordings/{{userId}}/{{filename}}" if context.user_id else "recordings/{{filename}}"
    return interpolate(template, {**context.meta, "filename": filename})


def resolve_storage(
    context: ConnectionContext, settings: Settings, artifact_path: Union[str, os.PathLike]
) -> StorageDestination:
    return StorageDestination(
        bucket=resolve_bucket(context, settings),
        key=resolve_key(artifact_path, context, settings),
    )


# --------------- webhook


def resolve_webhook(settings: Settings) -> WebhookDestination:
    """URL and auth come from settings only; there is no per-connection override."""
    if not settings.WEBHOOK_URL:
        raise NoDestinationConfigured("No webhook URL configured")

    headers: Dict[str, str] = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    headers.update(settings.WEBHOOK_HEADERS or {})

    auth = None
    auth_type = (settings.WEBHOOK_AUTH_TYPE or "none").lower()
    if auth_type == "bearer" and settings.WEBHOOK_AUTH_TOKEN:
        headers["Authorization"] = f"Bearer {settings.WEBHOOK_AUTH_TOKEN}"
    elif auth_type == "basic" and settings.WEBHOOK_AUTH_USERNAME and settings.WEBHOOK_AUTH_PASSWORD:
        auth = (settings.WEBHOOK_AUTH_USERNAME, settings.WEBHOOK_AUTH_PASSWORD)

    return WebhookDestination(url=settings.WEBHOOK_URL, headers=headers, auth=auth)


def resolve(
    kind: DestinationKind,
    context: ConnectionContext,
    settings: Settings,
    *,
    artifact_path: Union[str, os.PathLike, None] = None,
) -> Destination:
    if kind == "upload":
        if artifact_path is None:
            raise ValueError("artifact_path required for upload destinations")
        return resolve_storage(context, settings, artifact_path)
    if kind == "webhook":
        return resolve_webhook(settings)
    raise ValueError(f"unknown destination kind {kind}")


# --------------- recording names / connection parameters


def recording_filename(
    template: Optional[str],
    context: ConnectionContext,
    session_id: str,
    now: Optional[datetime] = None,
) -> str:
    if not template:
        return FALLBACK_FILENAME

    fields: Dict[str, Any] = {
        "timestamp": path_safe_timestamp(now),
        "sessionId": session_id,
        "connectionId": context.connection_id or "unknown",
        "userId": context.user_id or "anonymous",
        **context.meta,
    }
    return sanitize_path(interpolate(template, fields))


def recording_path(settings: Settings, filename: str) -> Path:
    """Join filename under RECORDINGS_PATH; raises ValueError if it would land outside."""
    root = Path(settings.RECORDINGS_PATH)
    path = root / sanitize_path(filename)
    if not path.resolve().is_relative_to(root.resolve()):
        raise ValueError(f"Recording path escapes {root}: {filename}")
    return path


def drive_path(template: Optional[str], meta: Mapping[str, Any]) -> Optional[str]:
    if not template:
        return None
    return interpolate(template, meta)


def connection_settings(token: Mapping[str, Any], settings: Settings) -> Dict[str, Any]:
    """Token parameters overlaid with configured protocol defaults and the RDP drive path."""
    params: Dict[str, Any] = dict(token)
    defaults = settings.CONNECTION_DEFAULTS or {}
    params.update(defaults.get("all", {}))

    protocol = params.get("protocol")
    if protocol and protocol in defaults:
        params.update(defaults[protocol])

    if protocol == "rdp":
        path = drive_path(settings.DRIVE_PATH_TEMPLATE, token.get("meta") or {})
        if path:
            params["drive-path"] = path
    return params
