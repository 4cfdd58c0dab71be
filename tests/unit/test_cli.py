"""
Unit tests for the operator CLI.
"""

import json
import sys

import pytest
import typer
from loguru import logger
from typer.testing import CliRunner

from session_relay.cli import _parse_meta, app
from session_relay.config import get_settings
from session_relay.errors import DeliveryError
from session_relay.sinks import WebhookSink


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for var in ("S3_DEFAULT_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "WEBHOOK_ENABLE", "WEBHOOK_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("RECORDINGS_PATH", str(tmp_path / "recordings"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    logger.remove()
    logger.add(sys.stderr)


def test_status_reports_configuration(runner, monkeypatch):
    monkeypatch.setenv("S3_DEFAULT_BUCKET", "env-bkt")
    monkeypatch.setenv("RECORDINGS_COMPRESSION_FORMAT", "gzip")

    result = runner.invoke(app, ["--log-level", "ERROR", "status"])

    assert result.exit_code == 0
    body = json.loads(result.stdout)
    assert body["default_bucket"] == "env-bkt"
    assert body["compression"] == "gzip"
    assert body["webhook_enabled"] is False
    assert body["upload_max_attempts"] == 3


def test_upload_without_bucket_fails(runner, tmp_path):
    artifact = tmp_path / "rec.guac"
    artifact.write_bytes(b"x")

    result = runner.invoke(app, ["--log-level", "ERROR", "upload", str(artifact), "-m", "userId=u1"])

    assert result.exit_code == 1
    assert artifact.exists()


def test_upload_missing_file(runner, tmp_path):
    result = runner.invoke(app, ["upload", str(tmp_path / "nope.guac")])
    assert result.exit_code != 0


def test_notify_requires_webhook(runner):
    result = runner.invoke(app, ["--log-level", "ERROR", "notify", "session_started"])
    assert result.exit_code == 1


def test_webhook_check_when_disabled(runner):
    result = runner.invoke(app, ["--log-level", "ERROR", "test-webhook"])
    assert result.exit_code == 1
    assert json.loads(result.stdout) == {"success": False, "error": "Webhook not enabled"}


def test_storage_check_without_credentials(runner):
    result = runner.invoke(app, ["--log-level", "ERROR", "test-storage"])
    assert result.exit_code == 1
    assert json.loads(result.stdout) == {"ok": False}


def test_parse_meta():
    assert _parse_meta(["userId=u1", "note=a=b"]) == {"userId": "u1", "note": "a=b"}
    with pytest.raises(typer.BadParameter):
        _parse_meta(["novalue"])


@pytest.fixture
def webhook_env(monkeypatch):
    monkeypatch.setenv("WEBHOOK_ENABLE", "true")
    monkeypatch.setenv("WEBHOOK_URL", "https://hooks.example/relay")
    monkeypatch.setenv("NOTIFY_BACKOFF_BASE_MS", "1")
    monkeypatch.setenv("NOTIFY_BACKOFF_CAP_MS", "5")
    monkeypatch.setenv("QUEUE_POLL_INTERVAL_SEC", "0.01")


def test_notify_delivered(runner, webhook_env, monkeypatch):
    sent = []

    async def _send(self, event):
        sent.append(event.to_json())

    monkeypatch.setattr(WebhookSink, "send", _send)
    result = runner.invoke(app, ["--log-level", "ERROR", "notify", "session_started", "--session-id", "s1"])

    assert result.exit_code == 0
    assert "ok" in result.stdout
    assert sent[0]["session_id"] == "s1"


def test_notify_abandoned_exits_nonzero(runner, webhook_env, monkeypatch):
    async def _send(self, event):
        raise DeliveryError("HTTP 503")

    monkeypatch.setattr(WebhookSink, "send", _send)
    result = runner.invoke(app, ["--log-level", "ERROR", "notify", "session_started"])

    assert result.exit_code == 1
