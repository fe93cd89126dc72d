"""
Domain event fan-out.
"""

from ws_gateway.components.broadcast.dispatcher import (
    DispatchResult,
    EventDispatcher,
    is_ws_connected,
)

__all__ = [
    "DispatchResult",
    "EventDispatcher",
    "is_ws_connected",
]
