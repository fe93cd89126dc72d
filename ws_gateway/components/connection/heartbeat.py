"""
Liveness Monitor for the WebSocket Gateway.

Presence check, not RTT measurement. Every interval each registered
connection is either evicted (no proof of life since the previous tick) or
marked suspected and probed with a ``ping`` frame. Any inbound frame,
including the client's ``pong``, marks it alive again.

A connection that never answers is therefore evicted on the second tick:
never before one full interval, always within two.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from shared.config.logging import audit_ws_connection, get_logger
from ws_gateway.components.core.context import is_ws_connected
from ws_gateway.components.connection.registry import Connection, ConnectionRegistry
from ws_gateway.components.core.constants import OutboundType, WSCloseCode, WSConstants

logger = get_logger(__name__)


class LivenessMonitor:
    """
    Periodically probes registered connections and evicts unresponsive ones.

    The monitor never touches Connection fields directly; it goes through
    ConnectionRegistry.mark_suspected / remove.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        interval: float = WSConstants.HEARTBEAT_INTERVAL,
        send_timeout: float = WSConstants.SEND_TIMEOUT,
        on_evict: Callable[[Connection], Awaitable[None]] | None = None,
    ) -> None:
        """
        Args:
            registry: Connection registry to scan.
            interval: Seconds between ticks.
            send_timeout: Upper bound for a single probe write.
            on_evict: Optional coroutine called after each eviction.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._registry = registry
        self._interval = interval
        self._send_timeout = send_timeout
        self._on_evict = on_evict
        self._task: asyncio.Task | None = None

        self._ticks = 0
        self._probes_sent = 0
        self._evictions = 0
        self._last_tick_at: float | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def record_activity(self, handle: Any) -> None:
        """Proof of life from a connection (any inbound frame or pong)."""
        self._registry.mark_alive(handle)

    async def tick(self) -> list[Connection]:
        """
        Run one liveness pass.

        Returns:
            Connections evicted during this pass.
        """
        self._ticks += 1
        self._last_tick_at = time.time()
        evicted: list[Connection] = []

        for connection in self._registry.all():
            try:
                if not connection.is_alive:
                    await self._evict(connection)
                    evicted.append(connection)
                else:
                    self._registry.mark_suspected(connection.handle)
                    await self._probe(connection)
            except Exception as e:
                # One bad socket must not stop the pass
                logger.warning(
                    "Liveness check failed for connection",
                    connection_id=connection.connection_id,
                    error=str(e),
                )

        if evicted:
            logger.info("Evicted unresponsive connections", count=len(evicted))
        return evicted

    async def _probe(self, connection: Connection) -> None:
        ws = connection.handle
        if not is_ws_connected(ws):
            return
        try:
            await asyncio.wait_for(
                ws.send_json({
                    "type": OutboundType.PING.value,
                    "payload": {"timestamp": time.time()},
                }),
                timeout=self._send_timeout,
            )
            self._probes_sent += 1
        except Exception as e:
            # Unanswered probe is handled by the next tick
            logger.debug("Liveness probe failed", connection_id=connection.connection_id, error=str(e))

    async def _evict(self, connection: Connection) -> None:
        try:
            await connection.handle.close(
                code=WSCloseCode.GOING_AWAY, reason="Heartbeat timeout"
            )
        except Exception as e:
            logger.debug("Failed to close stale connection", error=str(e))
        finally:
            self._registry.remove(connection.handle)

        self._evictions += 1
        audit_ws_connection(
            "EVICTED",
            endpoint="/ws",
            user_id=connection.user_id,
            reason="heartbeat_timeout",
            connection_id=connection.connection_id,
        )
        if self._on_evict is not None:
            await self._on_evict(connection)

    async def run(self) -> None:
        """Tick forever; exits only on cancellation."""
        logger.info("Liveness monitor started", interval=self._interval)
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self.tick()
            except asyncio.CancelledError:
                logger.info("Liveness monitor stopped")
                raise
            except Exception as e:
                logger.error("Error in liveness monitor", error=str(e), exc_info=True)

    def start(self) -> asyncio.Task:
        """Start the background loop on the running event loop."""
        if self.is_running:
            logger.warning("Liveness monitor already running")
            return self._task  # type: ignore[return-value]
        self._task = asyncio.create_task(self.run(), name="liveness_monitor")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def get_stats(self) -> dict[str, Any]:
        return {
            "interval_seconds": self._interval,
            "running": self.is_running,
            "ticks": self._ticks,
            "probes_sent": self._probes_sent,
            "evictions": self._evictions,
            "last_tick_at": self._last_tick_at,
        }
