"""
Pytest configuration and fixtures.

Server-side components are exercised with FakeWebSocket, client-side ones
with FakeTransport; the end-to-end scenarios run the real application
through TestClient.
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from rest_api.main import create_app
from rest_api.store import InMemoryRecordStore
from shared.config.settings import Settings
from shared.security.auth import TokenVerificationError
from sync_client.config import SessionSettings
from sync_client.transport import TransportClosed
from ws_gateway.components.connection.registry import ConnectionRegistry


# =============================================================================
# Collaborator doubles
# =============================================================================


class FakeVerifier:
    """TokenVerifier with a fixed token -> user table. "expired" is always rejected."""

    def __init__(self, tokens: dict[str, str] | None = None):
        self.tokens = dict(tokens or {"T": "u1", "T1b": "u1", "T2": "u2"})
        self.calls: list[str | None] = []

    def verify(self, token):
        self.calls.append(token)
        if not token:
            raise TokenVerificationError("No token provided", reason="missing_token")
        if token == "expired":
            raise TokenVerificationError("Token has expired", reason="token_expired")
        try:
            return self.tokens[token]
        except KeyError:
            raise TokenVerificationError("Invalid token", reason="invalid_token")


class FakeWebSocket:
    """Server-side socket double with the Starlette attributes the gateway reads."""

    def __init__(self, fail_send: bool = False, hang_send: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.headers: dict[str, str] = {}
        self.sent: list[dict] = []
        self.closed_with: tuple[int, str | None] | None = None
        self.fail_send = fail_send
        self.hang_send = hang_send

    async def accept(self):
        return None

    async def send_json(self, message):
        if self.fail_send:
            raise RuntimeError("send failed")
        if self.hang_send:
            await asyncio.sleep(3600)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str | None = None):
        self.closed_with = (code, reason)
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


class FakeTransport:
    """
    Client transport double.

    Frames the client sends are recorded (decoded) in ``sent``; frames for
    the client are pushed with ``feed``. ``drop()`` ends the stream as if
    the server went away.
    """

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self.fail_sends = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def send(self, data: str) -> None:
        if self.closed or self.fail_sends:
            raise TransportClosed(1006, "send failed")
        self.sent.append(json.loads(data))

    async def recv(self) -> str:
        item = await self._inbox.get()
        if item is None:
            self.closed = True
            raise TransportClosed(1006, "Connection lost")
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self._inbox.put_nowait(None)

    def feed(self, message: dict) -> None:
        self._inbox.put_nowait(json.dumps(message))

    def drop(self) -> None:
        self._inbox.put_nowait(None)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


class TransportFactoryStub:
    """Hands out FakeTransports. ``fail`` makes every connect raise, ``fail_first`` only the first n."""

    def __init__(self, fail: bool = False, fail_first: int = 0):
        self.fail = fail
        self.fail_first = fail_first
        self.transports: list[FakeTransport] = []
        self.calls = 0

    async def __call__(self, url: str) -> FakeTransport:
        self.calls += 1
        if self.fail or self.calls <= self.fail_first:
            raise ConnectionRefusedError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def session_settings():
    """Fast client timings for tests."""
    return SessionSettings(
        url="ws://test/ws",
        base_delay=0.01,
        backoff_rate=1.5,
        max_delay=1.0,
        max_reconnect_attempts=3,
        heartbeat_interval=60.0,
        max_missed_heartbeats=3,
        auth_timeout=5.0,
        connect_timeout=1.0,
        max_queue_size=5,
    )


@pytest.fixture
def app_settings():
    return Settings(environment="development", debug=True, ws_heartbeat_interval=30.0)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def app(app_settings, store, verifier):
    return create_app(settings=app_settings, store=store, verifier=verifier)


@pytest.fixture
def client(app):
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(token: str = "T") -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
