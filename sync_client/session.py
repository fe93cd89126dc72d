"""
Client Session Manager.

Owns one realtime connection to the gateway and its lifecycle:

    disconnected -> connecting -> connected -> authenticated

Any state can fall to ``error`` or ``disconnected``; from there the session
reconnects on its own with exponential backoff until the attempt cap is
reached, after which it stays in ``error`` until ``reconnect()`` or
``set_token()`` is called.

Outbound application messages are queued (bounded, drop-oldest) until the
session is authenticated and flushed in order afterwards. Incoming frames
are dispatched by type to two handler registries: transient handlers
(cleared by ``destroy()``) and persistent handlers (for infrastructure such
as the store/sync bridge).
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from shared.config.logging import sync_client_logger as logger
from sync_client.config import SessionSettings
from sync_client.policy import ReconnectPolicy
from sync_client.queue import BoundedMessageQueue
from sync_client.transport import Transport, TransportClosed, TransportFactory

__all__ = [
    "ConnectionStatus",
    "ClientConnectionState",
    "ClientSessionManager",
    "STATUS_EVENT",
    "WILDCARD",
]

# Local event published on every status change
STATUS_EVENT = "connection:status"
# Handler key that receives every event as {"event": ..., "data": ...}
WILDCARD = "*"

Handler = Callable[[Any], Any]


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass(frozen=True)
class ClientConnectionState:
    """Point-in-time view of a session."""

    status: ConnectionStatus
    reconnect_attempts: int
    queued: int
    dropped: int
    missed_heartbeats: int
    user_id: str | None
    last_error: str | None


class ClientSessionManager:
    """
    One client's realtime session.

    Args:
        url: Gateway websocket URL.
        transport_factory: Opens a connected Transport for ``url``.
        token: Credential sent in ``authenticate`` right after connecting.
        settings: Timing and sizing; defaults to SessionSettings().
        sleep: Awaitable used for reconnect backoff delays.
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory,
        token: str | None = None,
        settings: SessionSettings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.token = token
        self.settings = settings or SessionSettings()
        self.policy = ReconnectPolicy.from_settings(self.settings)
        self.queue = BoundedMessageQueue(self.settings.max_queue_size)

        self._transport_factory = transport_factory
        self._sleep = sleep
        self._transport: Transport | None = None

        self.status = ConnectionStatus.DISCONNECTED
        self.reconnect_attempts = 0
        self.missed_heartbeats = 0
        self.user_id: str | None = None
        self.last_error: str | None = None

        # Set by disconnect(); suppresses automatic reconnects
        self._closing = False

        self._reconnect_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._auth_timeout_task: asyncio.Task | None = None
        self._handler_tasks: set[asyncio.Task] = set()

        self._handlers: dict[str, list[Handler]] = {}
        self._persistent_handlers: dict[str, list[Handler]] = {}

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_open

    @property
    def is_authenticated(self) -> bool:
        return self.status is ConnectionStatus.AUTHENTICATED and self.is_connected

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None

    def snapshot(self) -> ClientConnectionState:
        return ClientConnectionState(
            status=self.status,
            reconnect_attempts=self.reconnect_attempts,
            queued=len(self.queue),
            dropped=self.queue.dropped,
            missed_heartbeats=self.missed_heartbeats,
            user_id=self.user_id,
            last_error=self.last_error,
        )

    def _set_status(self, status: ConnectionStatus, **details: Any) -> None:
        if status is self.status and not details:
            return
        previous = self.status
        self.status = status
        logger.debug(
            "Session status changed",
            previous=previous.value,
            status=status.value,
            **details,
        )
        self._notify(STATUS_EVENT, {"status": status.value, "previous": previous.value, **details})

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """
        Open the transport and authenticate if a token is held.

        Returns True once the transport is connected. A failure schedules a
        reconnect and returns False; it never raises for transport errors.
        """
        if self.is_connected:
            return True

        self._closing = False
        self._set_status(ConnectionStatus.CONNECTING)

        try:
            transport = await asyncio.wait_for(
                self._transport_factory(self.url),
                timeout=self.settings.connect_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.last_error = _describe(e)
            logger.warning(
                "Connection attempt failed",
                url=self.url,
                attempt=self.reconnect_attempts,
                error=self.last_error,
            )
            self._set_status(ConnectionStatus.ERROR, error=self.last_error)
            self._schedule_reconnect()
            return False

        if self._closing:
            # disconnect() was called while the connect was in flight
            await _close_quietly(transport)
            return False

        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self._transport = transport
        self.reconnect_attempts = 0
        self.last_error = None
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("Connected", url=self.url)

        self._reader_task = asyncio.create_task(
            self._read_loop(transport), name="session_reader"
        )
        self._start_heartbeat()
        await self._authenticate()
        return True

    async def disconnect(self) -> None:
        """Close the session on purpose. No automatic reconnect follows."""
        self._closing = True
        self._cancel(self._reconnect_task)
        self._reconnect_task = None

        transport = self._transport
        self._teardown()
        if transport is not None:
            logger.info("Disconnecting", url=self.url)
            await _close_quietly(transport, 1000, "Client disconnected")
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def destroy(self) -> None:
        """Disconnect and drop transient handlers and queued messages."""
        await self.disconnect()
        self._handlers.clear()
        self.queue.clear()
        for task in list(self._handler_tasks):
            task.cancel()

    async def reconnect(self) -> bool:
        """Manual reconnect; resets the attempt counter."""
        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        transport = self._transport
        self._teardown()
        if transport is not None:
            await _close_quietly(transport, 1000, "Client reconnecting")
        self.reconnect_attempts = 0
        return await self.connect()

    async def set_token(self, token: str | None) -> None:
        """
        Replace the credential.

        On an open transport the session re-authenticates in place;
        otherwise it connects (resetting the attempt counter) unless a
        reconnect is already pending.
        """
        self.token = token
        if not token:
            return
        if self.is_connected:
            await self._authenticate()
        elif self._reconnect_task is None:
            self.reconnect_attempts = 0
            await self.connect()

    def _teardown(self) -> None:
        """Stop per-connection tasks and forget the transport."""
        self._cancel(self._reader_task)
        self._cancel(self._heartbeat_task)
        self._cancel(self._auth_timeout_task)
        self._reader_task = None
        self._heartbeat_task = None
        self._auth_timeout_task = None
        self._transport = None
        self.user_id = None
        self.missed_heartbeats = 0

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    # =========================================================================
    # Reconnect
    # =========================================================================

    def _schedule_reconnect(self) -> None:
        """Arm the single reconnect timer unless one is pending or the cap is hit."""
        if self._closing or self._reconnect_task is not None:
            return

        if self.policy.exhausted(self.reconnect_attempts):
            self.last_error = "Max reconnect attempts reached"
            logger.error(
                "Giving up reconnecting",
                url=self.url,
                attempts=self.reconnect_attempts,
            )
            self._set_status(ConnectionStatus.ERROR, error=self.last_error)
            return

        delay = self.policy.delay(self.reconnect_attempts)
        logger.info(
            "Reconnecting",
            delay=delay,
            attempt=self.reconnect_attempts + 1,
            max_attempts=self.policy.max_attempts,
        )
        self._set_status(
            ConnectionStatus.RECONNECTING,
            attempt=self.reconnect_attempts + 1,
            delay=delay,
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="session_reconnect"
        )

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        if self.is_connected:
            return
        self.reconnect_attempts += 1
        await self.connect()

    async def _handle_transport_lost(self, transport: Transport, reason: str) -> None:
        if transport is not self._transport:
            return
        logger.warning("Connection lost", url=self.url, reason=reason)
        self._teardown()
        await _close_quietly(transport)
        self._set_status(ConnectionStatus.DISCONNECTED, reason=reason)
        self._schedule_reconnect()

    # =========================================================================
    # Authentication
    # =========================================================================

    async def _authenticate(self) -> None:
        self._cancel(self._auth_timeout_task)
        self._auth_timeout_task = None

        transport = self._transport
        if transport is None:
            return
        if not self.token:
            logger.info("No token available, waiting for set_token()")
            return

        sent = await self._send_control({"type": "authenticate", "token": self.token, "payload": {}})
        if sent:
            self._auth_timeout_task = asyncio.create_task(
                self._auth_timeout_watch(transport), name="session_auth_timeout"
            )

    async def _auth_timeout_watch(self, transport: Transport) -> None:
        await asyncio.sleep(self.settings.auth_timeout)
        if transport is not self._transport:
            return
        self._auth_timeout_task = None
        self.last_error = "Authentication timeout"
        logger.warning("Authentication timeout", timeout=self.settings.auth_timeout)
        self._set_status(ConnectionStatus.ERROR, error=self.last_error)
        self._teardown()
        await _close_quietly(transport, 1000, "Authentication timeout")
        self._schedule_reconnect()

    # =========================================================================
    # Heartbeat
    # =========================================================================

    def _start_heartbeat(self) -> None:
        self._cancel(self._heartbeat_task)
        self.missed_heartbeats = 0
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(), name="session_heartbeat"
        )

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.heartbeat_interval)
            transport = self._transport
            if transport is None or not transport.is_open:
                return

            await self._send_control({"type": "ping", "payload": {"timestamp": _now_ms()}})
            self.missed_heartbeats += 1

            if self.missed_heartbeats >= self.settings.max_missed_heartbeats:
                logger.warning(
                    "Missed heartbeats, reconnecting",
                    missed=self.missed_heartbeats,
                )
                await self._handle_transport_lost(transport, "Heartbeat timeout")
                return

    # =========================================================================
    # Inbound
    # =========================================================================

    async def _read_loop(self, transport: Transport) -> None:
        reason = "Connection closed"
        try:
            while True:
                raw = await transport.recv()
                try:
                    await self._handle_raw(raw)
                except Exception as e:
                    logger.error(
                        "Failed to handle frame",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
        except TransportClosed as e:
            if e.reason:
                reason = e.reason
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Reader failed", error=str(e), error_type=type(e).__name__)
            reason = _describe(e)
        await self._handle_transport_lost(transport, reason)

    async def _handle_raw(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Dropping unparsable frame", size=len(raw or ""))
            return
        if not isinstance(message, dict):
            logger.warning("Dropping non-object frame")
            return
        await self._handle_message(message)

    async def _handle_message(self, message: dict[str, Any]) -> None:
        msg_type = message.get("type") or message.get("event")
        payload = message.get("payload")
        if payload is None:
            payload = message.get("data", {})
        if not isinstance(msg_type, str):
            logger.warning("Dropping frame without type")
            return

        if msg_type == "ping":
            await self._send_control({"type": "pong", "payload": {"timestamp": _now_ms()}})
            return
        if msg_type == "pong":
            self.missed_heartbeats = 0
            return

        if msg_type == "welcome":
            logger.debug("Server welcome", connection_id=(payload or {}).get("connectionId"))
        elif msg_type == "authenticated":
            await self._on_authenticated(payload or {})
        elif msg_type == "unauthorized":
            self._on_unauthorized(payload or {})
        elif msg_type == "error":
            logger.warning(
                "Server error",
                message=(payload or {}).get("message"),
                code=(payload or {}).get("code"),
            )

        self._notify(msg_type, payload)

    async def _on_authenticated(self, payload: dict[str, Any]) -> None:
        self._cancel(self._auth_timeout_task)
        self._auth_timeout_task = None
        self.user_id = payload.get("userId")
        self.last_error = None
        logger.info("Authenticated", user_id=self.user_id)
        self._set_status(ConnectionStatus.AUTHENTICATED, user_id=self.user_id)
        await self._flush_queue()

    def _on_unauthorized(self, payload: dict[str, Any]) -> None:
        # Retrying with the same credential would fail again; wait for set_token()
        self._cancel(self._auth_timeout_task)
        self._auth_timeout_task = None
        self.last_error = payload.get("message") or "Unauthorized"
        logger.warning("Authentication rejected", reason=payload.get("reason"))
        self._set_status(ConnectionStatus.ERROR, error=self.last_error)

    # =========================================================================
    # Outbound
    # =========================================================================

    async def emit(self, msg_type: str, payload: dict[str, Any] | None = None) -> bool:
        """
        Send an application message.

        Returns True if it was written now. While the session is not
        authenticated, or if the write fails, the message is queued and
        False is returned.
        """
        message = {"type": msg_type, "payload": payload or {}}
        transport = self._transport
        if not self.is_authenticated or transport is None:
            self.queue.put(message)
            logger.debug("Message queued", type=msg_type, queued=len(self.queue))
            return False
        try:
            await transport.send(json.dumps(message))
            return True
        except Exception as e:
            logger.warning("Send failed, message queued", type=msg_type, error=_describe(e))
            self.queue.put(message)
            return False

    async def _flush_queue(self) -> None:
        pending = self.queue.drain()
        if not pending:
            return
        logger.info("Flushing queued messages", count=len(pending))
        for index, message in enumerate(pending):
            transport = self._transport
            if not self.is_authenticated or transport is None:
                for remaining in pending[index:]:
                    self.queue.put(remaining)
                return
            try:
                await transport.send(json.dumps(message))
            except Exception as e:
                logger.warning(
                    "Queued message send failed, re-queued",
                    type=message.get("type"),
                    error=_describe(e),
                )
                self.queue.put(message)

    async def _send_control(self, message: dict[str, Any]) -> bool:
        """Write a protocol frame directly, bypassing the queue."""
        transport = self._transport
        if transport is None:
            return False
        try:
            await transport.send(json.dumps(message))
            return True
        except Exception as e:
            logger.debug("Control frame send failed", type=message.get("type"), error=_describe(e))
            return False

    # =========================================================================
    # Event handlers
    # =========================================================================

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a transient handler. Returns an unsubscribe callable."""
        _add_handler(self._handlers, event, handler)
        return lambda: self.off(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        _remove_handler(self._handlers, event, handler)

    def on_persistent(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a handler that survives destroy()."""
        _add_handler(self._persistent_handlers, event, handler)
        return lambda: self.off_persistent(event, handler)

    def off_persistent(self, event: str, handler: Handler) -> None:
        _remove_handler(self._persistent_handlers, event, handler)

    def _notify(self, event: str, data: Any) -> None:
        for registry in (self._handlers, self._persistent_handlers):
            for handler in list(registry.get(event, ())):
                self._invoke(handler, data, event)
        envelope = {"event": event, "data": data}
        for registry in (self._handlers, self._persistent_handlers):
            for handler in list(registry.get(WILDCARD, ())):
                self._invoke(handler, envelope, WILDCARD)

    def _invoke(self, handler: Handler, data: Any, event: str) -> None:
        try:
            result = handler(data)
        except Exception as e:
            logger.error(
                "Event handler failed",
                event=event,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_task_done)

    def _handler_task_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Async event handler failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )


def _add_handler(registry: dict[str, list[Handler]], event: str, handler: Handler) -> None:
    handlers = registry.setdefault(event, [])
    if handler not in handlers:
        handlers.append(handler)


def _remove_handler(registry: dict[str, list[Handler]], event: str, handler: Handler) -> None:
    handlers = registry.get(event)
    if not handlers:
        return
    if handler in handlers:
        handlers.remove(handler)
    if not handlers:
        del registry[event]


async def _close_quietly(transport: Transport, code: int = 1000, reason: str = "") -> None:
    try:
        await transport.close(code, reason)
    except Exception as e:
        logger.debug("Error closing transport", error=str(e))


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _now_ms() -> int:
    return int(time.time() * 1000)
