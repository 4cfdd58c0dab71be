from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger

from .compression import compress
from .config import get_settings
from .errors import ResolutionError
from .models import ConnectionContext
from .pipeline import DeliveryPipeline
from .resolver import resolve_webhook
from .sinks import ObjectStoreSink, WebhookSink

app = typer.Typer(help="session-relay operational CLI")


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _parse_meta(pairs: List[str]) -> dict:
    meta = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got {pair!r}")
        meta[key] = value
    return meta


def meta_opt() -> List[str]:
    return typer.Option([], "--meta", "-m", help="Connection metadata as key=value (repeatable)")


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", envvar="LOG_LEVEL")):
    configure_logging(log_level or get_settings().LOG_LEVEL)


@app.command("status")
def status():
    """Show the effective delivery configuration."""
    s = get_settings()
    typer.echo(
        json.dumps(
            {
                "recordings_storage": s.RECORDINGS_STORAGE,
                "compression": s.RECORDINGS_COMPRESSION_FORMAT,
                "default_bucket": s.S3_DEFAULT_BUCKET,
                "storage_credentials": s.storage_credentials,
                "webhook_enabled": s.webhook_enabled,
                "upload_max_attempts": s.UPLOAD_MAX_ATTEMPTS,
                "notify_max_attempts": s.NOTIFY_MAX_ATTEMPTS,
            },
            indent=2,
        )
    )


@app.command("upload")
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Recording file"),
    session_id: str = typer.Option("manual", "--session-id"),
    bucket: Optional[str] = typer.Option(None, "--bucket", help="Override the default bucket"),
    meta: List[str] = meta_opt(),
):
    """Compress (per configuration) and upload one recording, waiting for the result."""
    context = ConnectionContext(meta=_parse_meta(meta), bucket=bucket)

    async def _run() -> bool:
        async with DeliveryPipeline() as pipeline:
            outcome = {}

            async def _capture(event):
                if event.final:
                    outcome["result"] = event.outcome.value

            pipeline.uploads.outcomes.subscribe(_capture)
            processed = await compress(path, pipeline.settings.RECORDINGS_COMPRESSION_FORMAT)
            try:
                pipeline.enqueue_upload(processed, context, session_id)
            except ResolutionError as e:
                logger.error(str(e))
                return False
        return outcome.get("result") == "delivered"

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)
    typer.echo("ok")


@app.command("notify")
def notify(
    event: str = typer.Argument(..., help="session_started | session_ended | test"),
    session_id: str = typer.Option("manual", "--session-id"),
    meta: List[str] = meta_opt(),
):
    """Send one webhook event through the notification queue, waiting for the result."""
    context = ConnectionContext(meta=_parse_meta(meta))

    async def _run() -> bool:
        async with DeliveryPipeline() as pipeline:
            if not pipeline.webhook_enabled:
                logger.error("Webhook not enabled")
                return False
            outcome = {}

            async def _capture(evt):
                if evt.final:
                    outcome["result"] = evt.outcome.value

            pipeline.notifications.outcomes.subscribe(_capture)
            try:
                pipeline.enqueue_notification(event, context, session_id)
            except ValueError as e:
                logger.error(f"Invalid event {event!r}: {e}")
                return False
        return outcome.get("result") == "delivered"

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)
    typer.echo("ok")


@app.command("test-webhook")
def test_webhook():
    """POST a test event once, without retries."""
    s = get_settings()
    if not s.webhook_enabled:
        typer.echo(json.dumps({"success": False, "error": "Webhook not enabled"}))
        raise typer.Exit(code=1)

    async def _run():
        async with WebhookSink(resolve_webhook(s), timeout=s.WEBHOOK_TIMEOUT_SEC) as sink:
            return await sink.test()

    ok, error = asyncio.run(_run())
    typer.echo(json.dumps({"success": ok, "error": error}))
    if not ok:
        raise typer.Exit(code=1)


@app.command("test-storage")
def test_storage(
    bucket: Optional[str] = typer.Option(None, "--ensure-bucket", help="Create this bucket if missing"),
):
    """Check object storage credentials (and optionally create a bucket)."""
    sink = ObjectStoreSink.from_settings(get_settings())

    async def _run() -> bool:
        ok = await sink.test_connection()
        if ok and bucket:
            ok = await sink.ensure_bucket(bucket)
        return ok

    ok = asyncio.run(_run())
    typer.echo(json.dumps({"ok": ok}))
    if not ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
