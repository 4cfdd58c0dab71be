from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from loguru import logger
from minio import Minio

from session_relay.config import Settings
from session_relay.errors import ArtifactMissing, StorageUnavailable, map_sink_error
from session_relay.resolver import StorageDestination

from .base import record_write

MULTIPART_THRESHOLD = 100 * 1024 * 1024
PART_SIZE = 10 * 1024 * 1024

CONTENT_TYPES = {
    ".gz": "application/gzip",
    ".zip": "application/zip",
}


def content_type_for(path: Union[str, os.PathLike]) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


def _split_endpoint(endpoint: str, secure: bool) -> tuple[str, bool]:
    # Minio wants host[:port]; accept full URLs too
    if "://" in endpoint:
        parsed = urlparse(endpoint)
        return parsed.netloc, parsed.scheme == "https"
    return endpoint, secure


class ObjectStoreSink:
    """S3-compatible object storage client; one upload() call is one attempt.

    Blocking minio calls run in a worker thread so the event loop keeps
    draining other queues while bytes are on the wire.
    """

    name = "object_store"

    def __init__(
        self,
        endpoint: str = "s3.amazonaws.com",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        *,
        region: str = "us-east-1",
        secure: bool = True,
        client: Optional[Minio] = None,
    ):
        self._client = client
        if self._client is None and access_key and secret_key:
            host, secure = _split_endpoint(endpoint, secure)
            self._client = Minio(
                host,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
                region=region,
            )
        elif self._client is None:
            logger.warning("Storage credentials not provided, uploads disabled")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStoreSink":
        return cls(
            endpoint=settings.S3_ENDPOINT,
            access_key=settings.S3_ACCESS_KEY_ID,
            secret_key=settings.S3_SECRET_ACCESS_KEY,
            region=settings.S3_REGION,
            secure=settings.S3_SECURE,
        )

    @property
    def available(self) -> bool:
        return self._client is not None

    async def upload(self, path: Union[str, os.PathLike], destination: StorageDestination) -> str:
        """Upload the file at path to destination; returns the object key."""
        with record_write(self.name):
            if not self.available:
                raise StorageUnavailable("Object storage client not configured")
            try:
                await asyncio.to_thread(self._put, Path(path), destination)
            except Exception as e:
                raise map_sink_error(e) from e

        logger.info(f"Uploaded {Path(path).name} to {destination.uri}")
        return destination.key

    def _put(self, path: Path, destination: StorageDestination) -> None:
        if not path.exists():
            raise ArtifactMissing(f"File not found: {path}")

        size = path.stat().st_size
        ctype = content_type_for(path)

        if size > MULTIPART_THRESHOLD:
            logger.debug(f"Multipart upload of {path.name} ({size} bytes)")
            self._client.fput_object(
                destination.bucket,
                destination.key,
                str(path),
                content_type=ctype,
                part_size=PART_SIZE,
            )
            return

        with open(path, "rb") as fh:
            self._client.put_object(
                destination.bucket,
                destination.key,
                fh,
                length=size,
                content_type=ctype,
            )

    async def ensure_bucket(self, bucket: str) -> bool:
        """Create bucket if it does not exist. Returns False on any error."""
        if not self.available:
            return False

        def _op() -> None:
            if not self._client.bucket_exists(bucket):
                self._client.make_bucket(bucket)
                logger.info(f"Created bucket: {bucket}")

        try:
            await asyncio.to_thread(_op)
            return True
        except Exception as e:
            logger.error(f"Error checking bucket {bucket}: {e}")
            return False

    async def test_connection(self) -> bool:
        if not self.available:
            return False
        try:
            await asyncio.to_thread(self._client.list_buckets)
            return True
        except Exception as e:
            logger.error(f"Storage connection test failed: {e}")
            return False
