"""
Tests for the Liveness Monitor.

A connection that never answers is evicted on the second tick: never
before one full interval, always within two.
"""

import asyncio

import pytest

from ws_gateway.components.connection.heartbeat import LivenessMonitor
from ws_gateway.components.connection.registry import LivenessState
from ws_gateway.components.core.constants import WSCloseCode
from tests.conftest import FakeWebSocket, wait_until


class TestTick:

    @pytest.mark.asyncio
    async def test_first_tick_probes_and_suspects(self, registry):
        ws = FakeWebSocket()
        connection = registry.register(ws)
        monitor = LivenessMonitor(registry, interval=30)

        evicted = await monitor.tick()

        assert evicted == []
        assert connection.liveness is LivenessState.SUSPECTED
        assert ws.types() == ["ping"]
        assert "timestamp" in ws.sent[0]["payload"]
        assert ws in registry

    @pytest.mark.asyncio
    async def test_silent_connection_evicted_on_second_tick(self, registry):
        ws = FakeWebSocket()
        registry.register(ws)
        registry.authenticate(ws, "u1")
        monitor = LivenessMonitor(registry, interval=30)

        await monitor.tick()
        evicted = await monitor.tick()

        assert [c.handle for c in evicted] == [ws]
        assert ws.closed_with == (WSCloseCode.GOING_AWAY, "Heartbeat timeout")
        assert ws not in registry
        assert registry.find_by_user("u1") == set()
        assert monitor.get_stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_activity_between_ticks_keeps_connection(self, registry):
        ws = FakeWebSocket()
        connection = registry.register(ws)
        monitor = LivenessMonitor(registry, interval=30)

        for _ in range(5):
            await monitor.tick()
            monitor.record_activity(ws)

        assert ws in registry
        assert connection.liveness is LivenessState.ALIVE
        assert ws.types().count("ping") == 5

    @pytest.mark.asyncio
    async def test_close_failure_still_removes(self, registry):
        ws = FakeWebSocket()

        async def broken_close(code=1000, reason=None):
            raise RuntimeError("already gone")

        ws.close = broken_close
        registry.register(ws)
        registry.mark_suspected(ws)
        monitor = LivenessMonitor(registry, interval=30)

        evicted = await monitor.tick()

        assert len(evicted) == 1
        assert ws not in registry

    @pytest.mark.asyncio
    async def test_failing_probe_does_not_stop_pass(self, registry):
        broken = FakeWebSocket(fail_send=True)
        healthy = FakeWebSocket()
        registry.register(broken)
        registry.register(healthy)
        monitor = LivenessMonitor(registry, interval=30)

        await monitor.tick()

        assert healthy.types() == ["ping"]

    @pytest.mark.asyncio
    async def test_on_evict_callback(self, registry):
        ws = FakeWebSocket()
        registry.register(ws)
        registry.mark_suspected(ws)
        seen = []

        async def on_evict(connection):
            seen.append(connection.handle)

        monitor = LivenessMonitor(registry, interval=30, on_evict=on_evict)
        await monitor.tick()

        assert seen == [ws]

    def test_interval_must_be_positive(self, registry):
        with pytest.raises(ValueError):
            LivenessMonitor(registry, interval=0)


class TestRunLoop:

    @pytest.mark.asyncio
    async def test_background_loop_evicts_within_two_intervals(self, registry):
        interval = 0.05
        ws = FakeWebSocket()
        registry.register(ws)
        monitor = LivenessMonitor(registry, interval=interval)

        loop = asyncio.get_running_loop()
        started = loop.time()
        monitor.start()
        try:
            await wait_until(lambda: ws not in registry, timeout=2.0)
            elapsed = loop.time() - started
        finally:
            await monitor.stop()

        assert elapsed >= interval
        assert monitor.get_stats()["ticks"] == 2
        assert monitor.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_task(self, registry):
        monitor = LivenessMonitor(registry, interval=10)
        first = monitor.start()
        second = monitor.start()
        try:
            assert first is second
        finally:
            await monitor.stop()
