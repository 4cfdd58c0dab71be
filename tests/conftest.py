"""
Pytest configuration and fixtures for session-relay.

Provides cross-platform event loop configuration and test settings.
"""

import asyncio
import sys

import pytest

from session_relay.config import Settings
from session_relay.models import ConnectionContext

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def make_settings(tmp_path):
    """Build Settings isolated from the environment and any .env file."""

    def _make(**overrides) -> Settings:
        values = {"RECORDINGS_PATH": str(tmp_path / "recordings")}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def context():
    """Connection with user metadata and a sensitive field."""
    return ConnectionContext(
        connection_id="conn-1",
        protocol="rdp",
        meta={"userId": "u1", "api_key": "k-123", "display": "desk"},
    )
