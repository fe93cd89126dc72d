"""
Per-socket helpers: connection state check, log sanitising and the audit
context that follows one socket from CONNECT to DISCONNECT.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from starlette.websockets import WebSocketState

from shared.config.logging import audit_ws_connection

if TYPE_CHECKING:
    from fastapi import WebSocket


# C0/C1 controls, zero-width characters, bidi embeddings/overrides/isolates, BOM
_UNPRINTABLE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    True while both directions of a Starlette socket are open.

    Starlette only notices a vanished peer on the next receive or send, so
    callers still guard their writes.
    """
    return (
        getattr(ws, "client_state", None) == WebSocketState.CONNECTED
        and getattr(ws, "application_state", None) == WebSocketState.CONNECTED
    )


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Make a client-supplied string safe to embed in a log line.

    Cuts to ``max_length`` first (appending "..." when cut), then drops
    unprintable and direction-changing characters and escapes quotes and
    backslashes.
    """
    clipped = data[:max_length]
    cleaned = _UNPRINTABLE.sub("", clipped).replace("\\", "\\\\").replace('"', '\\"')
    return cleaned + "..." if len(data) > max_length else cleaned


@dataclass
class WebSocketContext:
    """
    Audit fields for one socket. ``user_id`` is filled in by the
    authentication handshake.
    """

    endpoint: str
    connection_id: str
    origin: str | None = None
    user_id: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket", endpoint: str, connection_id: str) -> "WebSocketContext":
        return cls(endpoint, connection_id, origin=websocket.headers.get("origin"))

    @property
    def identifier(self) -> str:
        """``user:<id>`` once authenticated, ``conn:<id>`` before."""
        return f"user:{self.user_id}" if self.user_id else f"conn:{self.connection_id}"

    def audit(self, event_type: str, **extra: Any) -> None:
        audit_ws_connection(
            event_type=event_type,
            endpoint=self.endpoint,
            user_id=self.user_id,
            origin=self.origin,
            connection_id=self.connection_id,
            **extra,
        )
