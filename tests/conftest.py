"""Shared test fixtures and configuration for the Homie test suite.

This module provides reusable fixtures for common test scenarios including:
- A scripted fake Home Assistant websocket
- Configuration objects
- Async test utilities
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import pytest
from homie.assistant.config import HubConfig
from homie.assistant.hub_session import HubSession
from websockets.exceptions import ConnectionClosedError

AUTH_REQUIRED = {"type": "auth_required", "ha_version": "2024.6.0"}
AUTH_OK = {"type": "auth_ok", "ha_version": "2024.6.0"}
HANG = object()

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    return Mock(spec=logging.Logger)


# ============================================================================
# Home Assistant Fixtures
# ============================================================================


class FakeWebSocket:
    """Replays scripted hub messages and records what the client sends.

    Each scripted item is a dict (sent as JSON), a str/bytes (sent verbatim),
    an exception instance (raised from ``recv``) or ``HANG`` (never returns).
    Once the script runs out the socket behaves as closed by the hub.
    """

    def __init__(self, incoming: list[Any]) -> None:
        self.incoming = list(incoming)
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.send_error: Exception | None = None

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedError(None, None)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(message))

    async def recv(self) -> str | bytes:
        if self.closed or not self.incoming:
            raise ConnectionClosedError(None, None)
        item = self.incoming.pop(0)
        if item is HANG:
            await asyncio.Event().wait()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, (str, bytes)):
            return item
        return json.dumps(item)

    async def close(self) -> None:
        self.closed = True

    def requests(self) -> list[dict[str, Any]]:
        """Messages sent after the auth handshake."""
        return [message for message in self.sent if message.get("type") != "auth"]


@pytest.fixture
def hub_config():
    """Create a basic hub configuration for testing."""
    return HubConfig(
        base_url="http://homeassistant.local:8123",
        token="test_token_123",
        verify_ssl=True,
        timeout=None,
    )


@pytest.fixture
def fake_hub():
    """Patch ``websockets.connect`` and return a factory for scripted sockets.

    Usage:
        ws = fake_hub({"id": 1, "type": "result", "success": True, "result": []})
    """
    with patch("homie.assistant.hub_session.websockets.connect", new_callable=AsyncMock) as connect:

        def _install(*replies: Any, handshake: bool = True) -> FakeWebSocket:
            incoming = [AUTH_REQUIRED, AUTH_OK, *replies] if handshake else list(replies)
            ws = FakeWebSocket(incoming)
            connect.return_value = ws
            return ws

        _install.connect = connect  # type: ignore[attr-defined]
        yield _install


@pytest.fixture
def open_session(hub_config, fake_hub):
    """Return a coroutine factory producing an authenticated session and its socket."""

    async def _open(*replies: Any, config: HubConfig | None = None) -> tuple[HubSession, FakeWebSocket]:
        ws = fake_hub(*replies)
        session = HubSession(config or hub_config)
        await session.connect()
        return session, ws

    return _open


def result_message(message_id: int, result: Any = None, success: bool = True) -> dict[str, Any]:
    """Build a hub ``result`` reply."""
    return {"id": message_id, "type": "result", "success": success, "result": result}
