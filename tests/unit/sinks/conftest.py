"""
Fixtures for sink unit tests.
"""

from types import SimpleNamespace

import pytest

from session_relay.resolver import StorageDestination, WebhookDestination


class FakeMinio:
    """Records minio calls instead of talking to a server."""

    def __init__(self, fail_with: Exception = None, buckets=()):
        self.calls = []
        self.buckets = set(buckets)
        self._fail_with = fail_with

    def _maybe_fail(self):
        if self._fail_with is not None:
            raise self._fail_with

    def put_object(self, bucket, key, data, length, content_type=None):
        self._maybe_fail()
        self.calls.append(("put_object", bucket, key, data.read(), length, content_type))

    def fput_object(self, bucket, key, file_path, content_type=None, part_size=0):
        self._maybe_fail()
        self.calls.append(("fput_object", bucket, key, file_path, content_type, part_size))

    def bucket_exists(self, bucket):
        self._maybe_fail()
        return bucket in self.buckets

    def make_bucket(self, bucket):
        self.calls.append(("make_bucket", bucket))
        self.buckets.add(bucket)

    def list_buckets(self):
        self._maybe_fail()
        return [SimpleNamespace(name=b) for b in sorted(self.buckets)]


@pytest.fixture()
def fake_minio():
    return FakeMinio()


@pytest.fixture()
def destination():
    return StorageDestination(bucket="recordings-bkt", key="recordings/u1/s1.guac.gz")


@pytest.fixture()
def webhook_destination():
    return WebhookDestination(
        url="https://hooks.example/relay",
        headers={"Content-Type": "application/json", "Authorization": "Bearer t0k"},
    )


@pytest.fixture()
def recorded_posts():
    """Replacement for AsyncClient.post that records calls and answers with a fixed status."""

    class _Post:
        def __init__(self):
            self.calls = []
            self.status_code = 200
            self.reason_phrase = "OK"
            self.error = None

        async def __call__(self, url, json=None, headers=None, auth=None):
            self.calls.append({"url": url, "json": json, "headers": headers, "auth": auth})
            if self.error is not None:
                raise self.error
            return SimpleNamespace(status_code=self.status_code, reason_phrase=self.reason_phrase)

    return _Post()


@pytest.fixture()
def make_minio():
    """Factory for FakeMinio clients with custom failure behaviour."""
    return FakeMinio
