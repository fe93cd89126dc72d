"""
WebSocket endpoint implementations.
"""

from ws_gateway.components.endpoints.base import WebSocketEndpointBase
from ws_gateway.components.endpoints.handlers import SyncEndpoint

__all__ = [
    "WebSocketEndpointBase",
    "SyncEndpoint",
]
