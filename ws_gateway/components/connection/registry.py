"""
Connection Registry - owns every live client session on this process.

Indices maintained:
- by handle: transport handle -> Connection
- by user: user_id -> set[Connection] (authenticated connections only)

The registry is the only shared mutable state in the gateway. Other
components read it through the query methods (which return copies) and
change it only through register/authenticate/remove/mark_*.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)


class LivenessState(str, Enum):
    """Per-connection liveness as seen by the monitor."""

    ALIVE = "alive"
    SUSPECTED = "suspected"
    EVICTED = "evicted"


@dataclass(eq=False)
class Connection:
    """
    One live transport-level socket.

    ``user_id`` is set if and only if ``authenticated`` is True; only the
    registry assigns either field. Hashing is by identity so a Connection
    can live in sets while its fields change.
    """

    handle: Any
    connected_at: float
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    authenticated: bool = False
    user_id: str | None = None
    is_alive: bool = True
    closed: bool = False

    @property
    def liveness(self) -> LivenessState:
        if self.closed:
            return LivenessState.EVICTED
        return LivenessState.ALIVE if self.is_alive else LivenessState.SUSPECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "user_id": self.user_id,
            "authenticated": self.authenticated,
            "liveness": self.liveness.value,
            "connected_at": self.connected_at,
        }


class ConnectionRegistry:
    """
    In-memory registry of live connections.

    Single-process only: all calls happen on the event loop thread, so the
    maps need no locking. Sharing a registry across processes requires an
    external broadcast mechanism.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._connections: dict[Any, Connection] = {}
        self._by_user: dict[str, set[Connection]] = {}

        # Lifetime counters for stats
        self._total_registered = 0
        self._total_removed = 0

    # =========================================================================
    # Mutations
    # =========================================================================

    def register(self, handle: Any) -> Connection:
        """
        Create an unauthenticated Connection for a newly accepted transport.

        Registering an already-known handle returns the existing record.
        """
        existing = self._connections.get(handle)
        if existing is not None:
            return existing

        connection = Connection(handle=handle, connected_at=self._clock())
        self._connections[handle] = connection
        self._total_registered += 1
        logger.debug(
            "Connection registered",
            connection_id=connection.connection_id,
            total=len(self._connections),
        )
        return connection

    def authenticate(self, handle: Any, user_id: str) -> Connection | None:
        """
        Bind a user identity to a registered Connection.

        Unknown handles (already closed) are logged and ignored. Binding an
        authenticated Connection to a different user moves it between user
        indices.
        """
        connection = self._connections.get(handle)
        if connection is None:
            logger.warning("Authenticate called for unknown connection", user_id=user_id)
            return None

        if connection.user_id is not None and connection.user_id != user_id:
            self._unindex_user(connection)

        connection.authenticated = True
        connection.user_id = user_id
        self._by_user.setdefault(user_id, set()).add(connection)
        return connection

    def remove(self, handle: Any) -> Connection | None:
        """
        Drop a Connection. Idempotent: unknown handles are a no-op.

        Returns:
            The removed Connection, or None if it was not registered.
        """
        connection = self._connections.pop(handle, None)
        if connection is None:
            return None

        self._unindex_user(connection)
        connection.closed = True
        connection.is_alive = False
        self._total_removed += 1
        logger.debug(
            "Connection removed",
            connection_id=connection.connection_id,
            user_id=connection.user_id,
            total=len(self._connections),
        )
        return connection

    def mark_alive(self, handle: Any) -> bool:
        """Record proof of life. Returns False for unknown handles."""
        connection = self._connections.get(handle)
        if connection is None:
            return False
        connection.is_alive = True
        return True

    def mark_suspected(self, handle: Any) -> bool:
        """Clear the liveness flag ahead of a probe. Returns False for unknown handles."""
        connection = self._connections.get(handle)
        if connection is None:
            return False
        connection.is_alive = False
        return True

    def _unindex_user(self, connection: Connection) -> None:
        if connection.user_id is None:
            return
        user_connections = self._by_user.get(connection.user_id)
        if user_connections is None:
            return
        user_connections.discard(connection)
        if not user_connections:
            del self._by_user[connection.user_id]

    # =========================================================================
    # Queries (return copies)
    # =========================================================================

    def get(self, handle: Any) -> Connection | None:
        return self._connections.get(handle)

    def find_by_user(self, user_id: str) -> set[Connection]:
        """All live connections bound to the user (possibly empty)."""
        return set(self._by_user.get(user_id, ()))

    def all_authenticated(self) -> set[Connection]:
        return {c for c in self._connections.values() if c.authenticated}

    def all(self) -> list[Connection]:
        """Snapshot of every registered connection, oldest first."""
        return list(self._connections.values())

    @property
    def user_count(self) -> int:
        return len(self._by_user)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, handle: Any) -> bool:
        return handle in self._connections

    def get_stats(self) -> dict[str, int]:
        authenticated = sum(1 for c in self._connections.values() if c.authenticated)
        return {
            "total_connections": len(self._connections),
            "authenticated_connections": authenticated,
            "unauthenticated_connections": len(self._connections) - authenticated,
            "unique_users": len(self._by_user),
            "total_registered": self._total_registered,
            "total_removed": self._total_removed,
        }
