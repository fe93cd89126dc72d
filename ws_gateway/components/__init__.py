"""
WebSocket Gateway Components.

Organized into domain-specific modules:
- core/       - Constants, wire enumerations, connection context
- connection/ - Connection registry and liveness monitor
- auth/       - Post-connect authentication handshake
- broadcast/  - Domain event dispatcher
- events/     - Inbound message parsing
- endpoints/  - WebSocket endpoints (base, sync)

All public symbols are re-exported here. New code should import from
specific submodules for clarity.
"""

# =============================================================================
# Core Components
# =============================================================================
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

# =============================================================================
# Connection Management
# =============================================================================
from ws_gateway.components.connection.registry import (
    Connection,
    ConnectionRegistry,
    LivenessState,
)
from ws_gateway.components.connection.heartbeat import LivenessMonitor

# =============================================================================
# Authentication
# =============================================================================
from ws_gateway.components.auth.handshake import AuthResult, AuthenticationHandshake

# =============================================================================
# Broadcasting
# =============================================================================
from ws_gateway.components.broadcast.dispatcher import DispatchResult, EventDispatcher

# =============================================================================
# Events
# =============================================================================
from ws_gateway.components.events.types import (
    ECHO_EVENT_MAP,
    InboundMessage,
    InboundMessageError,
)

# =============================================================================
# Endpoints
# =============================================================================
from ws_gateway.components.endpoints.base import WebSocketEndpointBase
from ws_gateway.components.endpoints.handlers import SyncEndpoint

__all__ = [
    # Core
    "ErrorCode",
    "InboundType",
    "OutboundType",
    "WSCloseCode",
    "WSConstants",
    "validate_websocket_origin",
    "WebSocketContext",
    "is_ws_connected",
    "sanitize_log_data",
    # Connection
    "Connection",
    "ConnectionRegistry",
    "LivenessState",
    "LivenessMonitor",
    # Auth
    "AuthResult",
    "AuthenticationHandshake",
    # Broadcast
    "DispatchResult",
    "EventDispatcher",
    # Events
    "ECHO_EVENT_MAP",
    "InboundMessage",
    "InboundMessageError",
    # Endpoints
    "WebSocketEndpointBase",
    "SyncEndpoint",
]
