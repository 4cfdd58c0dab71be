"""
Custom exceptions for session-relay.

Resolution errors are raised before a task is queued; delivery errors are
raised by sink clients and absorbed by the delivery queue's retry loop.
"""


class RelayError(Exception):
    """Base error for the relay."""

    pass


class ResolutionError(RelayError):
    """No concrete sink address could be computed for an item."""

    pass


class NoDestinationConfigured(ResolutionError):
    """Neither the connection nor the settings name a destination."""

    pass


class StorageNotConfigured(ResolutionError):
    """No object storage client (missing credentials); uploads cannot be queued."""

    pass


class DeliveryError(RelayError):
    """A single delivery attempt failed; the queue may retry it."""

    pass


class ArtifactMissing(DeliveryError):
    """The artifact file to upload no longer exists."""

    pass


class StorageUnavailable(DeliveryError):
    """Object storage client is not configured (missing credentials)."""

    pass


class WebhookHTTPError(DeliveryError):
    """Webhook endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code}: {reason}".rstrip(": "))


def map_sink_error(e: Exception) -> DeliveryError:
    import httpx
    from minio.error import MinioException, S3Error

    if isinstance(e, DeliveryError):
        return e
    if isinstance(e, S3Error):
        return DeliveryError(f"{e.code}: {e.message}")
    if isinstance(e, MinioException):
        return DeliveryError(str(e))
    if isinstance(e, httpx.TimeoutException):
        return DeliveryError(f"timeout: {e}")
    if isinstance(e, httpx.HTTPError):
        return DeliveryError(f"{type(e).__name__}: {e}")
    if isinstance(e, FileNotFoundError):
        return ArtifactMissing(str(e))
    return DeliveryError(str(e))
