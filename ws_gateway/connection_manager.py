"""
WebSocket Connection Manager.

Thin orchestrator that composes the gateway components for one process:
- ConnectionRegistry: live connections and per-user index
- LivenessMonitor: probe / evict loop
- AuthenticationHandshake: token -> user binding
- EventDispatcher: domain event fan-out

Endpoints and REST handlers talk to this facade; nothing else holds a
reference to the registry's internals.
"""

from __future__ import annotations

import asyncio
from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.events import DomainEvent
from shared.security.auth import TokenVerifier
from ws_gateway.components.auth.handshake import AuthResult, AuthenticationHandshake
from ws_gateway.components.broadcast.dispatcher import DispatchResult, EventDispatcher
from ws_gateway.components.connection.heartbeat import LivenessMonitor
from ws_gateway.components.connection.registry import Connection, ConnectionRegistry
from ws_gateway.components.core.constants import OutboundType, WSCloseCode, WSConstants
from ws_gateway.components.core.context import WebSocketContext, is_ws_connected

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Manages WebSocket connections for real-time sync.

    Configuration from settings:
    - ws_heartbeat_interval: Liveness probe interval (default: 30s)
    - ws_send_timeout: Upper bound for one socket write (default: 5s)
    - ws_max_message_size: Largest inbound frame accepted (default: 64 KB)
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        heartbeat_interval: float | None = None,
        send_timeout: float | None = None,
        max_message_size: int | None = None,
    ) -> None:
        """
        Args:
            verifier: Resolves bearer tokens to user ids.
            heartbeat_interval: Override for settings.ws_heartbeat_interval.
            send_timeout: Override for settings.ws_send_timeout.
            max_message_size: Override for settings.ws_max_message_size.
        """
        self.heartbeat_interval = heartbeat_interval or settings.ws_heartbeat_interval
        self.send_timeout = send_timeout or settings.ws_send_timeout
        self.max_message_size = max_message_size or settings.ws_max_message_size

        self.registry = ConnectionRegistry()
        self.monitor = LivenessMonitor(
            self.registry,
            interval=self.heartbeat_interval,
            send_timeout=self.send_timeout,
        )
        self.handshake = AuthenticationHandshake(self.registry, verifier)
        self.dispatcher = EventDispatcher(self.registry, send_timeout=self.send_timeout)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start background tasks (liveness monitor)."""
        self.monitor.start()

    async def stop(self) -> None:
        """Stop background tasks and close every open socket."""
        await self.monitor.stop()

        connections = self.registry.all()
        for connection in connections:
            ws = connection.handle
            try:
                if is_ws_connected(ws):
                    await asyncio.wait_for(
                        ws.close(code=WSCloseCode.GOING_AWAY, reason="Server shutting down"),
                        timeout=WSConstants.SHUTDOWN_CLOSE_TIMEOUT,
                    )
            except Exception as e:
                logger.debug("Error closing connection on shutdown", error=str(e))
            finally:
                self.registry.remove(ws)

        if connections:
            logger.info("Closed connections on shutdown", count=len(connections))

    # =========================================================================
    # Connection operations
    # =========================================================================

    async def connect(self, websocket: "WebSocket") -> Connection:
        """Accept the transport, register it unauthenticated and greet the client."""
        await websocket.accept()
        connection = self.registry.register(websocket)
        await websocket.send_json({
            "type": OutboundType.WELCOME.value,
            "payload": {
                "message": "Connected to realtime sync",
                "connectionId": connection.connection_id,
            },
        })
        return connection

    async def disconnect(self, websocket: "WebSocket") -> Connection | None:
        """Unregister a socket. Safe to call more than once."""
        return self.registry.remove(websocket)

    async def authenticate(
        self,
        websocket: "WebSocket",
        token: str | None,
        context: WebSocketContext | None = None,
    ) -> AuthResult:
        return await self.handshake.handle(websocket, token, context)

    def record_activity(self, websocket: "WebSocket") -> None:
        self.monitor.record_activity(websocket)

    def is_authenticated(self, websocket: "WebSocket") -> bool:
        connection = self.registry.get(websocket)
        return connection is not None and connection.authenticated

    def user_id_for(self, websocket: "WebSocket") -> str | None:
        connection = self.registry.get(websocket)
        return connection.user_id if connection is not None else None

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def broadcast(self, event: DomainEvent) -> DispatchResult:
        return await self.dispatcher.broadcast(event)

    async def dispatch_to_user(self, user_id: str, event: DomainEvent) -> DispatchResult:
        return await self.dispatcher.dispatch_to_user(user_id, event)

    async def dispatch(self, event: DomainEvent) -> DispatchResult:
        return await self.dispatcher.dispatch(event)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "registry": self.registry.get_stats(),
            "liveness": self.monitor.get_stats(),
            "auth": self.handshake.get_stats(),
            "dispatch": self.dispatcher.get_stats(),
        }
