"""
Unit tests for ObjectStoreSink.
"""

import pytest

from session_relay.errors import ArtifactMissing, DeliveryError, StorageUnavailable
from session_relay.sinks import SINK_WRITE_LATENCY, ObjectStoreSink, content_type_for
from session_relay.sinks import object_store


@pytest.mark.parametrize(
    "name,ctype",
    [
        ("s1.guac.gz", "application/gzip"),
        ("s1.guac.zip", "application/zip"),
        ("s1.GUAC.ZIP", "application/zip"),
        ("s1.guac", "application/octet-stream"),
    ],
)
def test_content_type_for(name, ctype):
    assert content_type_for(name) == ctype


@pytest.mark.asyncio
async def test_small_file_uses_single_put(tmp_path, fake_minio, destination):
    artifact = tmp_path / "s1.guac.gz"
    artifact.write_bytes(b"recording-bytes")

    sink = ObjectStoreSink(client=fake_minio)
    key = await sink.upload(artifact, destination)

    assert key == "recordings/u1/s1.guac.gz"
    assert fake_minio.calls == [
        ("put_object", "recordings-bkt", "recordings/u1/s1.guac.gz", b"recording-bytes", 15, "application/gzip")
    ]


@pytest.mark.asyncio
async def test_large_file_uses_multipart(tmp_path, fake_minio, destination, monkeypatch):
    monkeypatch.setattr(object_store, "MULTIPART_THRESHOLD", 4)
    artifact = tmp_path / "s1.guac.gz"
    artifact.write_bytes(b"more than four bytes")

    await ObjectStoreSink(client=fake_minio).upload(artifact, destination)

    op, bucket, key, file_path, ctype, part_size = fake_minio.calls[0]
    assert op == "fput_object"
    assert (bucket, key) == ("recordings-bkt", "recordings/u1/s1.guac.gz")
    assert file_path == str(artifact)
    assert ctype == "application/gzip"
    assert part_size == object_store.PART_SIZE


@pytest.mark.asyncio
async def test_missing_artifact(tmp_path, fake_minio, destination):
    with pytest.raises(ArtifactMissing):
        await ObjectStoreSink(client=fake_minio).upload(tmp_path / "gone.guac", destination)
    assert fake_minio.calls == []


@pytest.mark.asyncio
async def test_without_credentials_is_unavailable(tmp_path, destination):
    artifact = tmp_path / "s1.guac"
    artifact.write_bytes(b"x")

    sink = ObjectStoreSink()
    assert not sink.available
    with pytest.raises(StorageUnavailable):
        await sink.upload(artifact, destination)
    assert await sink.test_connection() is False
    assert await sink.ensure_bucket("b") is False


@pytest.mark.asyncio
async def test_client_error_maps_to_delivery_error(tmp_path, destination, make_minio):
    artifact = tmp_path / "s1.guac"
    artifact.write_bytes(b"x")

    sink = ObjectStoreSink(client=make_minio(fail_with=OSError("connection reset")))
    with pytest.raises(DeliveryError):
        await sink.upload(artifact, destination)

    samples = list(SINK_WRITE_LATENCY.collect())[0].samples
    assert any(s.labels.get("sink") == "object_store" for s in samples)


@pytest.mark.asyncio
async def test_ensure_bucket_creates_missing(fake_minio):
    sink = ObjectStoreSink(client=fake_minio)
    assert await sink.ensure_bucket("new-bkt") is True
    assert await sink.ensure_bucket("new-bkt") is True
    assert fake_minio.calls == [("make_bucket", "new-bkt")]


@pytest.mark.asyncio
async def test_ensure_bucket_error_returns_false(make_minio):
    sink = ObjectStoreSink(client=make_minio(fail_with=RuntimeError("denied")))
    assert await sink.ensure_bucket("b") is False


@pytest.mark.asyncio
async def test_connection_check(fake_minio, make_minio):
    assert await ObjectStoreSink(client=fake_minio).test_connection() is True
    failing = ObjectStoreSink(client=make_minio(fail_with=RuntimeError("unreachable")))
    assert await failing.test_connection() is False


def test_from_settings_builds_client(make_settings):
    s = make_settings(
        S3_ENDPOINT="https://minio.internal:9000",
        S3_ACCESS_KEY_ID="AK",
        S3_SECRET_ACCESS_KEY="SK",
    )
    sink = ObjectStoreSink.from_settings(s)
    assert sink.available
