"""
Inbound message parsing and echo-to-event mapping.
"""

from ws_gateway.components.events.types import (
    ECHO_EVENT_MAP,
    InboundMessage,
    InboundMessageError,
)

__all__ = [
    "ECHO_EVENT_MAP",
    "InboundMessage",
    "InboundMessageError",
]
