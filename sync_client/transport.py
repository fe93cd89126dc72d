"""
Client transport abstraction.

The session manager talks to a Transport, never to a socket library
directly, so tests can inject in-memory doubles.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, runtime_checkable

import websockets
from websockets.exceptions import ConnectionClosed

from shared.config.logging import get_logger

logger = get_logger(__name__)


class TransportClosed(Exception):
    """The underlying connection has ended; no further frames will arrive."""

    def __init__(self, code: int | None = None, reason: str = ""):
        super().__init__(f"Transport closed ({code}): {reason}" if code else "Transport closed")
        self.code = code
        self.reason = reason


@runtime_checkable
class Transport(Protocol):
    """A full-duplex text frame channel."""

    @property
    def is_open(self) -> bool:
        ...

    async def send(self, data: str) -> None:
        ...

    async def recv(self) -> str:
        """Next text frame. Raises TransportClosed at end of stream."""
        ...

    async def close(self, code: int = 1000, reason: str = "") -> None:
        ...


# Opens a connected Transport for a URL.
TransportFactory = Callable[[str], Awaitable[Transport]]


class WebsocketsTransport:
    """Transport over a ``websockets`` client connection."""

    def __init__(self, connection) -> None:
        self._ws = connection
        self._closed = False

    @classmethod
    async def open(cls, url: str, max_size: int = 64 * 1024) -> "WebsocketsTransport":
        connection = await websockets.connect(url, max_size=max_size, close_timeout=5)
        logger.debug("Transport opened", url=url)
        return cls(connection)

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def send(self, data: str) -> None:
        if self._closed:
            raise TransportClosed()
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            self._closed = True
            raise TransportClosed(_close_code(e), _close_reason(e)) from e

    async def recv(self) -> str:
        if self._closed:
            raise TransportClosed()
        try:
            frame = await self._ws.recv()
        except ConnectionClosed as e:
            self._closed = True
            raise TransportClosed(_close_code(e), _close_reason(e)) from e
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")
        return frame

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close(code=code, reason=reason)


def _close_code(exc: ConnectionClosed) -> int | None:
    frame = exc.rcvd or exc.sent
    return frame.code if frame is not None else None


def _close_reason(exc: ConnectionClosed) -> str:
    frame = exc.rcvd or exc.sent
    return frame.reason if frame is not None else ""


async def websockets_transport_factory(url: str) -> Transport:
    """Default TransportFactory."""
    return await WebsocketsTransport.open(url)
