"""
Pydantic data models for session-relay.

Connection context handed over by the tunnel, webhook event bodies and the
upload request carried by the upload queue.
"""

from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, validator

from .utils import iso_timestamp

EventKind = Literal["session_started", "session_ended", "recording_saved", "test"]

# fixed event fields that extra notification data may not override
RESERVED_EVENT_FIELDS = frozenset({"event", "timestamp", "session_id", "token_meta"})


class ConnectionContext(BaseModel):
    """Per-connection data taken from the decrypted connection token."""

    connection_id: Optional[str] = None
    protocol: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    bucket: Optional[str] = None  # per-connection storage override
    recording: Optional[bool] = None

    @validator("meta", pre=True)
    def _meta_dict(cls, v):
        return v or {}

    @classmethod
    def from_token(cls, token: Dict[str, Any], connection_id: Optional[str] = None) -> "ConnectionContext":
        token = token or {}
        storage = token.get("s3") or {}
        connection = token.get("connection") or {}
        return cls(
            connection_id=connection_id,
            protocol=connection.get("type") or token.get("protocol"),
            meta=token.get("meta") or {},
            bucket=storage.get("bucket"),
            recording=token.get("recording"),
        )

    @property
    def user_id(self) -> Optional[str]:
        value = self.meta.get("userId")
        return str(value) if value else None


class RecordingRef(BaseModel):
    bucket: str
    key: str


class WebhookEvent(BaseModel):
    """JSON body POSTed to the webhook endpoint.

    Fields beyond the fixed ones (e.g. a recording reference or a duration)
    are kept and sent as top-level keys.
    """

    event: EventKind
    timestamp: str = Field(default_factory=iso_timestamp)
    session_id: str
    token_meta: Dict[str, Any] = Field(default_factory=dict)
    recording: Optional[RecordingRef] = None

    class Config:
        extra = "allow"

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RecordingInfo(BaseModel):
    """Where a session's recording is being written."""

    path: Path
    filename: str
