"""
Event Dispatcher - fans domain events out to live connections.

Delivery is fire-and-forget and at-most-once per currently-open
connection. A connection that is absent or mid-reconnect at dispatch time
misses the event; clients repair that with a resync.

Ordering: dispatches are serialized by a lock, so events leave the
dispatcher in submission order and each connection sees them in that
order. Within one dispatch, writes to different connections run
concurrently.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from shared.config.logging import get_logger
from shared.events import DomainEvent
from ws_gateway.components.connection.registry import Connection, ConnectionRegistry
from ws_gateway.components.core.constants import WSConstants
from ws_gateway.components.core.context import is_ws_connected

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome of one fan-out."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def targets(self) -> int:
        return self.sent + self.failed + self.skipped


class EventDispatcher:
    """
    Sends DomainEvents to all authenticated connections or to one user's.

    Reads the registry through its query methods only. Send failures are
    counted and logged, never raised: one failing write must not abort the
    fan-out to the rest.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        send_timeout: float = WSConstants.SEND_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._send_timeout = send_timeout
        self._lock = asyncio.Lock()

        self._events_dispatched = 0
        self._messages_sent = 0
        self._send_failures = 0

    async def broadcast(self, event: DomainEvent) -> DispatchResult:
        """Send to every currently-authenticated connection."""
        async with self._lock:
            targets = self._registry.all_authenticated()
            return await self._fan_out(targets, event, context="broadcast")

    async def dispatch_to_user(self, user_id: str, event: DomainEvent) -> DispatchResult:
        """Send to every connection bound to user_id, and to no other."""
        async with self._lock:
            targets = self._registry.find_by_user(user_id)
            return await self._fan_out(targets, event, context="user", user_id=user_id)

    async def dispatch(self, event: DomainEvent) -> DispatchResult:
        """Route on event.target_user_id: a user's sessions, or everyone when absent."""
        if event.target_user_id is None:
            return await self.broadcast(event)
        return await self.dispatch_to_user(event.target_user_id, event)

    async def _fan_out(
        self,
        targets: set[Connection],
        event: DomainEvent,
        context: str,
        **log_context: Any,
    ) -> DispatchResult:
        self._events_dispatched += 1
        if not targets:
            logger.debug(
                "No connections for event",
                event=event.event_name.value,
                context=context,
                **log_context,
            )
            return DispatchResult()

        message = event.to_message()
        outcomes = await asyncio.gather(
            *(self._send(connection, message) for connection in targets)
        )

        sent = sum(1 for o in outcomes if o is True)
        failed = sum(1 for o in outcomes if o is False)
        skipped = sum(1 for o in outcomes if o is None)
        self._messages_sent += sent
        self._send_failures += failed

        logger.debug(
            "Event dispatched",
            event=event.event_name.value,
            context=context,
            sent=sent,
            failed=failed,
            skipped=skipped,
            **log_context,
        )
        return DispatchResult(sent=sent, failed=failed, skipped=skipped)

    async def _send(self, connection: Connection, message: dict[str, Any]) -> bool | None:
        """
        Write one message.

        Returns:
            True on success, False on a failed write, None if the socket was
            not writable (closed or removed mid-dispatch).
        """
        ws = connection.handle
        if connection.closed or not is_ws_connected(ws):
            return None
        try:
            await asyncio.wait_for(ws.send_json(message), timeout=self._send_timeout)
            return True
        except Exception as e:
            logger.debug(
                "Send failed",
                connection_id=connection.connection_id,
                error=type(e).__name__,
            )
            return False

    def get_stats(self) -> dict[str, int]:
        return {
            "events_dispatched": self._events_dispatched,
            "messages_sent": self._messages_sent,
            "send_failures": self._send_failures,
        }
