"""
Core gateway building blocks: constants and connection context.
"""

from ws_gateway.components.core.constants import (
    ErrorCode,
    InboundType,
    OutboundType,
    WSCloseCode,
    WSConstants,
    validate_websocket_origin,
)
from ws_gateway.components.core.context import (
    WebSocketContext,
    is_ws_connected,
    sanitize_log_data,
)

__all__ = [
    "ErrorCode",
    "InboundType",
    "OutboundType",
    "WSCloseCode",
    "WSConstants",
    "validate_websocket_origin",
    "WebSocketContext",
    "is_ws_connected",
    "sanitize_log_data",
]
