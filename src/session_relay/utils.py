"""
Utility functions for session-relay.

Includes template interpolation, path-safe timestamps, payload redaction
and path sanitizing.
"""

import copy
import os
import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")
DRIVE_RE = re.compile(r"^[A-Za-z]:")

REDACTED = "[REDACTED]"

SENSITIVE_FIELDS = (
    "password",
    "secret",
    "token",
    "api_key",
    "api key",
    "api-key",
    "apikey",
    "access_key",
    "private_key",
    "private-key",
    "private key",
    "passphrase",
)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    dt = dt or utc_now()
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def path_safe_timestamp(dt: Optional[datetime] = None) -> str:
    """Fixed-width timestamp usable in file names, e.g. 2026-10-18T12-30-05-123Z."""
    return iso_timestamp(dt).replace(":", "-").replace(".", "-")


def interpolate(template: str, fields: Mapping[str, Any]) -> str:
    """
    Replace {{name}} tokens with values from fields.

    Tokens without a matching field (or whose value is None or empty) are
    left verbatim.
    """

    def _sub(match: re.Match) -> str:
        value = fields.get(match.group(1))
        if value is None or value == "":
            return match.group(0)
        return str(value)

    return PLACEHOLDER_RE.sub(_sub, template)


def is_sensitive(key: str) -> bool:
    k = str(key).lower()
    return any(field in k for field in SENSITIVE_FIELDS)


def redact(data: Any) -> Any:
    """
    Return a deep copy of data with every sensitive key replaced by REDACTED.

    Walks nested dicts and lists; non-matching keys are untouched.
    """
    if not isinstance(data, (dict, list)):
        return data
    return _redact(copy.deepcopy(data))


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        for key in list(obj.keys()):
            if is_sensitive(key):
                obj[key] = REDACTED
            else:
                obj[key] = _redact(obj[key])
    elif isinstance(obj, list):
        for i, item in enumerate(obj):
            obj[i] = _redact(item)
    return obj


def sanitize_path(path: str) -> str:
    """
    Normalize a relative path and refuse traversal outside its root.

    Leading separators and drive letters are stripped, so an absolute value
    is kept under the root it is joined to.
    """
    if not path or not isinstance(path, str):
        raise ValueError("Invalid path")
    rest = DRIVE_RE.sub("", path.replace("\\", "/"))
    normalized = os.path.normpath(rest.lstrip("/"))
    parts = normalized.replace("\\", "/").split("/")
    if ".." in parts:
        raise ValueError("Path traversal not allowed")
    if normalized in ("", "."):
        raise ValueError("Invalid path")
    return normalized
