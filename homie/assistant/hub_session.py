"""Authenticated Home Assistant websocket session.

The session owns one websocket, performs the ``auth_required`` / ``auth`` /
``auth_ok`` handshake and then exchanges strictly ordered request/reply pairs:
every request must consume its single reply before the next one is sent.
"""

from __future__ import annotations

import contextlib
import enum
import json
import logging
import ssl
from typing import Any

import websockets
from websockets.exceptions import WebSocketException

from homie.utils import await_with_timeout

from .config import HubConfig

_CHANNEL_ERRORS = (WebSocketException, OSError, TimeoutError)


class HubError(RuntimeError):
    """Generic Home Assistant session failure."""


class HubConnectionError(HubError):
    """The websocket could not be opened."""


class HubProtocolError(HubError):
    """The hub sent something other than what the protocol expects."""


class HubAuthError(HubError):
    """Raised when the hub answers the auth message with anything but ``auth_ok``."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class HubTransportError(HubError):
    """A read or write failed on an authenticated session."""

    def __init__(self, message: str, entity_id: str | None = None) -> None:
        super().__init__(message)
        self.entity_id = entity_id


class HubNotConnectedError(HubTransportError):
    """The session was used before authentication or after it was closed."""


class SessionState(enum.Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class MessageCounter:
    """Websocket message ids: start at 1, increase by one per request, never reused."""

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        return value

    def peek(self) -> int:
        return self._next


def decode_message(raw: str | bytes, what: str) -> dict[str, Any]:
    """Decode a hub message that must be a JSON object."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise HubProtocolError(f"Malformed {what} message: {raw!r}") from exc
    if not isinstance(message, dict):
        raise HubProtocolError(f"Expected a JSON object for {what}, got: {message!r}")
    return message


class HubSession:
    """One authenticated, ordered message channel plus its request-id counter.

    Not safe for concurrent use: callers sharing a session across tasks must
    serialise access themselves.
    """

    def __init__(self, config: HubConfig, logger: logging.Logger | None = None) -> None:
        if not config.base_url:
            raise ValueError("Home Assistant base URL is not configured")
        if not config.token:
            raise ValueError("Home Assistant token is not configured")
        self.config = config
        self.state = SessionState.UNCONNECTED
        self.hub_version: str | None = None
        self._ws: Any = None
        self._counter = MessageCounter()
        self._pending_id: int | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def next_message_id(self) -> int:
        return self._counter.peek()

    async def __aenter__(self) -> HubSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> None:
        if self.state is not SessionState.UNCONNECTED:
            raise HubProtocolError(f"Cannot connect a session that is {self.state.value}")

        uri = self.config.websocket_url
        self.state = SessionState.CONNECTING
        self._logger.debug("Connecting to Home Assistant at %s", uri)
        try:
            self._ws = await await_with_timeout(
                websockets.connect(uri, ssl=self._ssl_context()),
                self.config.timeout,
            )
        except _CHANNEL_ERRORS as exc:
            self.state = SessionState.CLOSED
            raise HubConnectionError(f"Failed to connect to {uri}: {exc}") from exc

        self.state = SessionState.AWAITING_AUTH
        authenticated = False
        try:
            await self._authenticate()
            authenticated = True
        finally:
            if not authenticated:
                await self.close()

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        self._pending_id = None
        if self.state is SessionState.UNCONNECTED:
            return
        self.state = SessionState.CLOSED
        if ws is None:
            return
        self._logger.debug("Closing Home Assistant session")
        with contextlib.suppress(*_CHANNEL_ERRORS):
            await ws.close()

    async def request(self, payload: dict[str, Any]) -> str | bytes:
        """Stamp ``payload`` with a fresh id, send it and return the raw reply.

        If the reply is never read (channel error, timeout, cancellation) the
        session is closed: a late reply would otherwise be taken as the answer
        to the next request.
        """
        if not self.authenticated or self._ws is None:
            raise HubNotConnectedError(f"Home Assistant session is {self.state.value}; connect() must succeed first")
        if self._pending_id is not None:
            raise HubProtocolError(f"Request {self._pending_id} is still waiting for its reply")

        message_id = self._counter.next_id()
        message = {"id": message_id, **payload}
        self._pending_id = message_id
        reply: str | bytes | None = None
        try:
            await self._send(message, HubTransportError, f"request {message_id} ({payload.get('type')})")
            reply = await self._receive(HubTransportError, f"reply to request {message_id}")
            return reply
        finally:
            self._pending_id = None
            if reply is None:
                self._logger.warning("Closing Home Assistant session: request %d got no reply", message_id)
                await self.close()

    async def _authenticate(self) -> None:
        raw = await self._receive(HubProtocolError, "auth_required")
        hello = decode_message(raw, "auth_required")
        self._logger.debug("Hub greeting: %s", hello.get("type"))

        await self._send(
            {"type": "auth", "access_token": self.config.token},
            HubProtocolError,
            "auth",
        )
        reply = decode_message(await self._receive(HubProtocolError, "auth result"), "auth result")
        if reply.get("type") != "auth_ok":
            raise HubAuthError(f"Home Assistant rejected the token: {reply}", payload=reply)

        self.hub_version = reply.get("ha_version")
        self.state = SessionState.AUTHENTICATED
        self._logger.info("Authenticated with Home Assistant %s", self.hub_version or "(unknown version)")

    async def _send(self, message: dict[str, Any], error: type[HubError], what: str) -> None:
        try:
            await await_with_timeout(self._ws.send(json.dumps(message)), self.config.timeout)
        except _CHANNEL_ERRORS as exc:
            raise error(f"Failed to send {what}: {exc}") from exc

    async def _receive(self, error: type[HubError], what: str) -> str | bytes:
        try:
            return await await_with_timeout(self._ws.recv(), self.config.timeout)
        except _CHANNEL_ERRORS as exc:
            raise error(f"Failed to read {what}: {exc}") from exc

    def _ssl_context(self) -> ssl.SSLContext | None:
        if not self.config.websocket_url.startswith("wss://"):
            return None
        ssl_context = ssl.create_default_context()
        if not self.config.verify_ssl:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        return ssl_context
