"""
Concrete WebSocket Endpoint: realtime sync.

Inbound frames are dispatched through a lookup table keyed by InboundType.
Only authenticate / ping / pong pass before authentication; every other
type is answered with ``error{unauthenticated}`` and dropped.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import WebSocket

from shared.config.logging import get_logger
from shared.config.settings import Settings
from shared.events import DomainEvent
from ws_gateway.components.core.constants import (
    PRE_AUTH_TYPES,
    ErrorCode,
    InboundType,
    OutboundType,
    WSConstants,
)
from ws_gateway.components.core.context import sanitize_log_data
from ws_gateway.components.endpoints.base import WebSocketEndpointBase
from ws_gateway.components.events.types import (
    ECHO_EVENT_MAP,
    InboundMessage,
    InboundMessageError,
)

if TYPE_CHECKING:
    from ws_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)

MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class SyncEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint for finance tracker clients.

    Features:
    - Post-connect token authentication, retriable on failure
    - Application-level ping/pong (allowed before authentication)
    - Mutation echoes relayed to the sender's own sessions
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str = "/ws",
        app_settings: Settings | None = None,
    ):
        super().__init__(websocket, manager, endpoint_name, app_settings)

        self._handlers: dict[InboundType, MessageHandler] = {
            InboundType.AUTHENTICATE: self._on_authenticate,
            InboundType.PING: self._on_ping,
            InboundType.PONG: self._on_pong,
        }
        for echo_type in ECHO_EVENT_MAP:
            self._handlers[echo_type] = self._on_mutation_echo

        missing = set(InboundType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for inbound types: {sorted(t.value for t in missing)}")

    async def handle_message(self, data: str) -> None:
        try:
            message = InboundMessage.parse(data)
        except InboundMessageError as e:
            logger.debug(
                "Rejected inbound message",
                identifier=self.identifier,
                code=e.code.value,
                message=sanitize_log_data(data, WSConstants.MAX_LOGGED_MESSAGE_LENGTH),
            )
            await self.send_error(e.message, e.code)
            return

        if message.type not in PRE_AUTH_TYPES and not self.manager.is_authenticated(self.websocket):
            await self.send_error("Not authenticated", ErrorCode.UNAUTHENTICATED)
            return

        await self._handlers[message.type](message)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_authenticate(self, message: InboundMessage) -> None:
        await self.manager.authenticate(self.websocket, message.token, self.context)

    async def _on_ping(self, message: InboundMessage) -> None:
        await self.send_json({
            "type": OutboundType.PONG.value,
            "payload": {"timestamp": time.time()},
        })

    async def _on_pong(self, message: InboundMessage) -> None:
        # Answer to a liveness probe; the loop already recorded activity
        return None

    async def _on_mutation_echo(self, message: InboundMessage) -> None:
        user_id = self.manager.user_id_for(self.websocket)
        if user_id is None:
            await self.send_error("Not authenticated", ErrorCode.UNAUTHENTICATED)
            return

        try:
            event = DomainEvent(
                event_name=message.echo_event,
                payload=message.payload,
                target_user_id=user_id,
            )
        except ValueError as e:
            await self.send_error(str(e), ErrorCode.INVALID_FORMAT)
            return

        result = await self.manager.dispatch(event)
        logger.debug(
            "Mutation echo relayed",
            user_id=user_id,
            event=event.event_name.value,
            sent=result.sent,
        )
