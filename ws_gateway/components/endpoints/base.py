"""
Socket lifecycle shared by gateway endpoints.

    origin check -> accept/register/welcome -> read loop -> unregister

Subclasses implement ``handle_message`` only. The connection is removed
from the registry on every exit path.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import audit_ws_connection, get_logger
from shared.config.settings import Settings, settings
from ws_gateway.components.connection.registry import Connection
from ws_gateway.components.core.constants import (
    ErrorCode,
    OutboundType,
    WSCloseCode,
    WSConstants,
    validate_websocket_origin,
)
from ws_gateway.components.core.context import WebSocketContext, is_ws_connected

if TYPE_CHECKING:
    from ws_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class WebSocketEndpointBase(ABC):
    """
    One accepted socket.

    A failure while handling a single frame is answered with
    ``error{internal_error}`` and the loop goes on. The loop ends on
    disconnect, on an oversized frame, or on an error outside message
    handling.
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str,
        app_settings: Settings | None = None,
    ):
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name
        self.settings = app_settings or settings
        self.connection: Connection | None = None
        self.context: WebSocketContext | None = None
        self._close_reason = "client_disconnect"

    @abstractmethod
    async def handle_message(self, data: str) -> None:
        """Process one size-checked text frame."""

    @property
    def identifier(self) -> str:
        return self.context.identifier if self.context else "unknown"

    async def run(self) -> None:
        if not await self._check_origin():
            return

        try:
            self.connection = await self.manager.connect(self.websocket)
        except Exception as e:
            logger.warning("Could not open connection", endpoint=self.endpoint_name, error=str(e))
            await self.manager.disconnect(self.websocket)
            return

        self.context = WebSocketContext.from_websocket(
            self.websocket, self.endpoint_name, self.connection.connection_id
        )
        self.context.audit("CONNECT")
        try:
            await self._read_loop()
        except WebSocketDisconnect:
            pass
        except Exception as e:
            self._close_reason = "server_error"
            logger.error(
                "Read loop failed",
                endpoint=self.endpoint_name,
                identifier=self.identifier,
                error=str(e),
                exc_info=True,
            )
        finally:
            await self.manager.disconnect(self.websocket)
            self.context.audit("DISCONNECT", reason=self._close_reason)

    async def _check_origin(self) -> bool:
        origin = self.websocket.headers.get("origin")
        if validate_websocket_origin(origin, self.settings):
            return True
        audit_ws_connection(
            event_type="AUTH_FAILED",
            endpoint=self.endpoint_name,
            origin=origin,
            reason="invalid_origin",
        )
        await self.websocket.close(code=WSCloseCode.POLICY_VIOLATION, reason="Origin not allowed")
        return False

    async def _read_loop(self) -> None:
        while True:
            data = await self.websocket.receive_text()
            if not await self.validate_message_size(data):
                return

            # Every frame counts as proof of life, whatever its content
            self.manager.record_activity(self.websocket)

            try:
                await self.handle_message(data)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(
                    "Message handling failed",
                    endpoint=self.endpoint_name,
                    identifier=self.identifier,
                    error=str(e),
                    exc_info=True,
                )
                await self.send_error("Internal server error", ErrorCode.INTERNAL_ERROR)

    async def validate_message_size(self, data: str) -> bool:
        """False (after telling the client and closing with 1009) if the frame is too large."""
        limit = self.manager.max_message_size or WSConstants.MAX_MESSAGE_SIZE
        size = len(data.encode("utf-8"))
        if size <= limit:
            return True

        logger.warning(
            "Frame over size limit, closing",
            endpoint=self.endpoint_name,
            identifier=self.identifier,
            size=size,
            limit=limit,
        )
        self._close_reason = "message_too_large"
        await self.send_error("Message too large", ErrorCode.MESSAGE_TOO_LARGE)
        try:
            await self.websocket.close(code=WSCloseCode.MESSAGE_TOO_BIG, reason="Message too large")
        except Exception as e:
            logger.debug("Close after oversized frame failed", error=str(e))
        return False

    async def send_json(self, message: dict[str, Any]) -> bool:
        if not is_ws_connected(self.websocket):
            return False
        try:
            await self.websocket.send_json(message)
        except Exception as e:
            logger.debug("Send failed", endpoint=self.endpoint_name, error=str(e))
            return False
        return True

    async def send_error(self, message: str, code: ErrorCode) -> bool:
        return await self.send_json({
            "type": OutboundType.ERROR.value,
            "payload": {"message": message, "code": code.value},
        })
