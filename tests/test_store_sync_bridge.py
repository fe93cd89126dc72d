"""
Tests for the Store/Sync Bridge and the REST client it resyncs through.
"""

import httpx
import pytest

from shared.events import EntityType
from sync_client.api import ApiError, ApiService
from sync_client.bridge import StoreSyncBridge, SyncOutcome
from sync_client.session import ClientSessionManager, ConnectionStatus
from sync_client.state import InMemoryStateStore, SyncTimestampMap
from tests.conftest import TransportFactoryStub, wait_until


class Clock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubApi:
    """Returns canned collections; entity types in ``failing`` raise ApiError."""

    def __init__(self, collections=None, failing=()):
        self.collections = collections or {}
        self.failing = set(failing)
        self.calls: list[EntityType] = []

    async def list(self, entity_type):
        self.calls.append(entity_type)
        if entity_type in self.failing:
            raise ApiError(None, "connection refused")
        return self.collections.get(entity_type, [])


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def state(clock):
    return InMemoryStateStore(clock=clock)


@pytest.fixture
def session(session_settings):
    return ClientSessionManager("ws://test/ws", TransportFactoryStub(), token="T", settings=session_settings)


def _bridge(session, state, clock, api=None):
    return StoreSyncBridge(session, state, api or StubApi(), clock=clock)


# =============================================================================
# Event application
# =============================================================================


class TestServerEvents:

    def test_added_event_applied(self, session, state, clock):
        bridge = _bridge(session, state, clock)
        payload = {"id": "t1", "amount": 12.5, "category": "food"}

        assert bridge.on_server_event("transaction:added", payload) is SyncOutcome.APPLIED
        assert state.get(EntityType.TRANSACTION, "t1") == payload

    def test_update_over_local_edit_resolves_to_server(self, session, state, clock):
        bridge = _bridge(session, state, clock)
        conflicts = []
        bridge.on_conflict(conflicts.append)

        clock.now = 150.0
        state.modify(EntityType.BUDGET, {"id": "b1", "category": "food", "limit": 300})
        clock.now = 200.0
        server = {"id": "b1", "category": "food", "limit": 500}

        outcome = bridge.on_server_event("budget:updated", server)

        assert outcome is SyncOutcome.CONFLICT_RESOLVED
        assert state.get(EntityType.BUDGET, "b1") == server
        assert state.modified_at(EntityType.BUDGET, "b1") is None
        assert bridge.timestamps.get(EntityType.BUDGET) == 200.0
        assert len(conflicts) == 1
        assert conflicts[0].local["limit"] == 300
        assert conflicts[0].server == server
        assert conflicts[0].last_sync == 100.0

    def test_local_edit_before_last_sync_is_not_a_conflict(self, session, state, clock):
        bridge = _bridge(session, state, clock)
        clock.now = 50.0
        state.modify(EntityType.BUDGET, {"id": "b1", "limit": 300})

        assert bridge.on_server_event("budget:updated", {"id": "b1", "limit": 500}) is SyncOutcome.APPLIED

    def test_deleted_event_removes_record(self, session, state, clock):
        bridge = _bridge(session, state, clock)
        state.upsert(EntityType.SAVINGS_GOAL, {"id": "g1", "title": "Trip"})

        assert bridge.on_server_event("savingsGoal:deleted", {"id": "g1"}) is SyncOutcome.APPLIED
        assert state.get(EntityType.SAVINGS_GOAL, "g1") is None

    def test_failing_conflict_callback_does_not_block_apply(self, session, state, clock):
        bridge = _bridge(session, state, clock)

        def broken(conflict):
            raise RuntimeError("boom")

        bridge.on_conflict(broken)
        clock.now = 150.0
        state.modify(EntityType.TRANSACTION, {"id": "t1", "amount": 1})

        outcome = bridge.on_server_event("transaction:deleted", {"id": "t1"})

        assert outcome is SyncOutcome.CONFLICT_RESOLVED
        assert state.get(EntityType.TRANSACTION, "t1") is None

    @pytest.mark.parametrize(
        "event, payload",
        [
            ("transaction:archived", {"id": "t1"}),
            ("budget:added", {"category": "food"}),
            ("budget:added", "not a dict"),
        ],
    )
    def test_ignored(self, session, state, clock, event, payload):
        bridge = _bridge(session, state, clock)

        assert bridge.on_server_event(event, payload) is SyncOutcome.IGNORED
        assert len(state) == 0


class TestSyncTimestampMap:

    def test_never_moves_backwards(self):
        timestamps = SyncTimestampMap(10.0)
        timestamps.advance(EntityType.BUDGET, 20.0)
        timestamps.advance(EntityType.BUDGET, 15.0)

        assert timestamps.get(EntityType.BUDGET) == 20.0
        assert timestamps.as_dict()["transaction"] == 10.0


# =============================================================================
# Resync
# =============================================================================


class TestResync:

    @pytest.mark.asyncio
    async def test_resync_replaces_collections(self, session, state, clock):
        api = StubApi({EntityType.TRANSACTION: [{"id": "t2", "amount": 3}]})
        bridge = _bridge(session, state, clock, api)
        state.upsert(EntityType.TRANSACTION, {"id": "t1", "amount": 1})
        state.upsert(EntityType.BUDGET, {"id": "b1"})
        clock.now = 300.0

        results = await bridge.resync()

        assert all(results.values())
        assert [r["id"] for r in state.all(EntityType.TRANSACTION)] == ["t2"]
        assert state.all(EntityType.BUDGET) == []
        assert bridge.timestamps.get(EntityType.SAVINGS_GOAL) == 300.0

    @pytest.mark.asyncio
    async def test_failed_collection_keeps_state_and_timestamp(self, session, state, clock):
        api = StubApi({EntityType.TRANSACTION: []}, failing={EntityType.BUDGET})
        bridge = _bridge(session, state, clock, api)
        state.upsert(EntityType.BUDGET, {"id": "b1"})
        clock.now = 300.0

        results = await bridge.resync()

        assert results[EntityType.BUDGET] is False
        assert results[EntityType.TRANSACTION] is True
        assert state.get(EntityType.BUDGET, "b1") == {"id": "b1"}
        assert bridge.timestamps.get(EntityType.BUDGET) == 100.0

    @pytest.mark.asyncio
    async def test_reconnect_after_authentication_triggers_resync(self, session_settings, state, clock):
        factory = TransportFactoryStub()
        session = ClientSessionManager("ws://test/ws", factory, token="T", settings=session_settings)
        api = StubApi()
        bridge = _bridge(session, state, clock, api)
        bridge.attach()
        try:
            await session.connect()
            assert api.calls == []

            factory.last.feed({"type": "authenticated", "payload": {"userId": "u1"}})
            await wait_until(lambda: session.status is ConnectionStatus.AUTHENTICATED)
            factory.last.drop()

            await wait_until(lambda: len(api.calls) == len(EntityType))
            assert factory.calls == 2
        finally:
            await session.destroy()
            bridge.detach()


# =============================================================================
# Subscription
# =============================================================================


class TestAttach:

    @pytest.mark.asyncio
    async def test_attached_bridge_applies_pushed_events(self, session_settings, state, clock):
        factory = TransportFactoryStub()
        session = ClientSessionManager("ws://test/ws", factory, token="T", settings=session_settings)
        bridge = _bridge(session, state, clock)
        bridge.attach()
        bridge.attach()
        try:
            await session.connect()
            factory.last.feed({"type": "authenticated", "payload": {"userId": "u1"}})
            factory.last.feed({"type": "budget:added", "payload": {"id": "b1", "limit": 10}})
            await wait_until(lambda: state.get(EntityType.BUDGET, "b1") is not None)
        finally:
            await session.destroy()

    @pytest.mark.asyncio
    async def test_attachment_survives_session_destroy(self, session_settings, state, clock):
        factory = TransportFactoryStub()
        session = ClientSessionManager("ws://test/ws", factory, token="T", settings=session_settings)
        bridge = _bridge(session, state, clock)
        bridge.attach()
        await session.destroy()
        try:
            await session.connect()
            factory.last.feed({"type": "transaction:added", "payload": {"id": "t1"}})
            await wait_until(lambda: state.get(EntityType.TRANSACTION, "t1") is not None)
        finally:
            await session.destroy()

    @pytest.mark.asyncio
    async def test_detach_stops_applying(self, session_settings, state, clock):
        factory = TransportFactoryStub()
        session = ClientSessionManager("ws://test/ws", factory, token="T", settings=session_settings)
        bridge = _bridge(session, state, clock)
        bridge.attach()
        bridge.detach()
        try:
            await session.connect()
            factory.last.feed({"type": "transaction:added", "payload": {"id": "t1"}})
            factory.last.feed({"type": "ping"})
            await wait_until(lambda: "pong" in factory.last.types())

            assert state.get(EntityType.TRANSACTION, "t1") is None
        finally:
            await session.destroy()


# =============================================================================
# REST client
# =============================================================================


class TestApiService:

    @pytest.mark.asyncio
    async def test_list_sends_bearer_token(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "t1"}])

        async with ApiService("http://test", "T", transport=httpx.MockTransport(handler)) as api:
            assert await api.list(EntityType.TRANSACTION) == [{"id": "t1"}]

        assert seen[0].url.path == "/api/transactions"
        assert seen[0].headers["Authorization"] == "Bearer T"

    @pytest.mark.asyncio
    async def test_update_uses_patch(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "g1"})

        async with ApiService("http://test", "T", transport=httpx.MockTransport(handler)) as api:
            await api.update(EntityType.SAVINGS_GOAL, "g1", {"title": "Car"})

        assert seen[0].method == "PATCH"
        assert seen[0].url.path == "/api/savings-goals/g1"

    @pytest.mark.asyncio
    async def test_delete_returns_none_on_204(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(204))
        async with ApiService("http://test", "T", transport=transport) as api:
            assert await api.delete(EntityType.BUDGET, "b1") is None

    @pytest.mark.asyncio
    async def test_error_response_raises_with_detail(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(404, json={"detail": "Budget not found"})
        )
        async with ApiService("http://test", "T", transport=transport) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.get(EntityType.BUDGET, "missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Budget not found"

    @pytest.mark.asyncio
    async def test_transport_errors_retried_with_backoff(self):
        attempts = []
        delays = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=[])

        async def fake_sleep(delay):
            delays.append(delay)

        async with ApiService(
            "http://test", "T", transport=httpx.MockTransport(handler), sleep=fake_sleep
        ) as api:
            assert await api.list(EntityType.BUDGET) == []

        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async def fake_sleep(delay):
            return None

        async with ApiService(
            "http://test", transport=httpx.MockTransport(handler), sleep=fake_sleep
        ) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.list(EntityType.BUDGET)

        assert exc_info.value.status_code is None
