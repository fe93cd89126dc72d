"""
Tests for the Event Dispatcher: scoping, failure isolation and ordering.
"""

import asyncio

import pytest

from shared.events import DomainEvent, EntityType, EventAction, EventName
from ws_gateway.components.broadcast.dispatcher import EventDispatcher
from tests.conftest import FakeWebSocket


def _event(name=EventName.TRANSACTION_ADDED, target=None, **payload):
    return DomainEvent(name, payload or {"id": "t1", "amount": 10}, target_user_id=target)


def _bind(registry, user_id, **ws_kwargs):
    ws = FakeWebSocket(**ws_kwargs)
    registry.register(ws)
    if user_id is not None:
        registry.authenticate(ws, user_id)
    return ws


class TestScoping:

    @pytest.mark.asyncio
    async def test_dispatch_to_user_reaches_every_session_of_that_user(self, registry):
        tab1 = _bind(registry, "u1")
        tab2 = _bind(registry, "u1")
        other = _bind(registry, "u2")
        dispatcher = EventDispatcher(registry)

        result = await dispatcher.dispatch_to_user("u1", _event())

        assert result.sent == 2
        expected = {"type": "transaction:added", "payload": {"id": "t1", "amount": 10}}
        assert tab1.sent == [expected]
        assert tab2.sent == [expected]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_skips_unauthenticated(self, registry):
        authed = [_bind(registry, "u1"), _bind(registry, "u2")]
        anonymous = _bind(registry, None)
        dispatcher = EventDispatcher(registry)

        result = await dispatcher.broadcast(_event(EventName.BUDGET_UPDATED))

        assert result.sent == 2
        assert all(ws.types() == ["budget:updated"] for ws in authed)
        assert anonymous.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_routes_on_target(self, registry):
        mine = _bind(registry, "u1")
        theirs = _bind(registry, "u2")
        dispatcher = EventDispatcher(registry)

        await dispatcher.dispatch(_event(target="u1"))
        await dispatcher.dispatch(_event(EventName.BUDGET_ADDED))

        assert mine.types() == ["transaction:added", "budget:added"]
        assert theirs.types() == ["budget:added"]

    @pytest.mark.asyncio
    async def test_no_targets(self, registry):
        dispatcher = EventDispatcher(registry)
        result = await dispatcher.dispatch_to_user("nobody", _event())
        assert result.targets == 0


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_one_failing_write_does_not_abort_fan_out(self, registry):
        broken = _bind(registry, "u1", fail_send=True)
        healthy = _bind(registry, "u1")
        dispatcher = EventDispatcher(registry)

        result = await dispatcher.dispatch_to_user("u1", _event())

        assert (result.sent, result.failed) == (1, 1)
        assert healthy.types() == ["transaction:added"]
        assert broken.sent == []
        assert dispatcher.get_stats()["send_failures"] == 1

    @pytest.mark.asyncio
    async def test_slow_write_is_bounded_by_timeout(self, registry):
        _bind(registry, "u1", hang_send=True)
        healthy = _bind(registry, "u1")
        dispatcher = EventDispatcher(registry, send_timeout=0.05)

        result = await asyncio.wait_for(dispatcher.dispatch_to_user("u1", _event()), timeout=1.0)

        assert (result.sent, result.failed) == (1, 1)
        assert healthy.types() == ["transaction:added"]

    @pytest.mark.asyncio
    async def test_closed_socket_is_skipped(self, registry):
        ws = _bind(registry, "u1")
        await ws.close()
        dispatcher = EventDispatcher(registry)

        result = await dispatcher.dispatch_to_user("u1", _event())

        assert result.skipped == 1
        assert ws.sent == []


class TestOrdering:

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_keep_submission_order(self, registry):
        ws = _bind(registry, "u1")
        dispatcher = EventDispatcher(registry)
        events = [
            DomainEvent(EventName.TRANSACTION_UPDATED, {"id": "t1", "amount": n}, target_user_id="u1")
            for n in range(20)
        ]

        await asyncio.gather(*(dispatcher.dispatch(e) for e in events))

        assert [m["payload"]["amount"] for m in ws.sent] == list(range(20))


class TestDomainEvent:

    def test_from_dict_accepts_event_or_type(self):
        by_event = DomainEvent.from_dict({"event": "budget:added", "payload": {"id": "b1"}})
        by_type = DomainEvent.from_dict({"type": "budget:added", "payload": {"id": "b1"}})
        assert by_event == by_type
        assert by_event.entity_type is EntityType.BUDGET

    def test_from_dict_rejects_unknown_name(self):
        with pytest.raises(ValueError):
            DomainEvent.from_dict({"event": "budget:archived", "payload": {}})

    def test_deletion_requires_id(self):
        with pytest.raises(ValueError):
            DomainEvent(EventName.SAVINGS_GOAL_DELETED, {})

    def test_message_omits_target_user(self):
        event = DomainEvent(EventName.TRANSACTION_DELETED, {"id": "t1"}, target_user_id="u1")
        assert event.to_message() == {"type": "transaction:deleted", "payload": {"id": "t1"}}

    def test_for_entity(self):
        name = EventName.for_entity(EntityType.SAVINGS_GOAL, EventAction.UPDATED)
        assert name is EventName.SAVINGS_GOAL_UPDATED
