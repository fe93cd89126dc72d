"""
End-to-end tests for the realtime gateway over a real ASGI websocket.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from rest_api.main import create_app
from shared.config.settings import Settings
from tests.conftest import auth_headers


def _authenticate(ws, token="T"):
    ws.send_json({"type": "authenticate", "token": token})
    return ws.receive_json()


class TestConnectAndAuthenticate:

    def test_welcome_on_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            welcome = ws.receive_json()

        assert welcome["type"] == "welcome"
        assert welcome["payload"]["connectionId"]

    def test_authenticate_acknowledges_user(self, client):
        """Scenario: authenticate{token:"T"} -> authenticated{userId:"u1"}."""
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            reply = _authenticate(ws, "T")

        assert reply == {"type": "authenticated", "payload": {"userId": "u1"}}

    def test_token_inside_payload_is_accepted(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "authenticate", "payload": {"token": "T2"}})
            reply = ws.receive_json()

        assert reply["payload"]["userId"] == "u2"

    def test_expired_token_then_ping_then_retry(self, client):
        """Scenario: rejected credential keeps the socket open; ping still answered."""
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            rejected = _authenticate(ws, "expired")
            assert rejected["type"] == "unauthorized"
            assert rejected["payload"]["reason"] == "token_expired"

            ws.send_json({"type": "ping"})
            pong = ws.receive_json()
            assert pong["type"] == "pong"
            assert "timestamp" in pong["payload"]

            accepted = _authenticate(ws, "T")
            assert accepted == {"type": "authenticated", "payload": {"userId": "u1"}}

    def test_event_field_accepted_as_discriminator(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"event": "ping"})
            assert ws.receive_json()["type"] == "pong"


class TestAuthenticationGate:

    def test_domain_message_rejected_before_auth(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "addTransaction", "payload": {"id": "t1"}})
            reply = ws.receive_json()

        assert reply == {
            "type": "error",
            "payload": {"message": "Not authenticated", "code": "unauthenticated"},
        }

    def test_pong_allowed_before_auth(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "pong"})
            ws.send_json({"type": "ping"})
            # pong produces no reply; the next frame answers the ping
            assert ws.receive_json()["type"] == "pong"


class TestMalformedMessages:

    @pytest.mark.parametrize(
        "frame,code",
        [
            ("not json", "invalid_format"),
            ("[1, 2]", "invalid_format"),
            ('{"payload": {}}', "missing_type"),
            ('{"type": "launchRockets"}', "unknown_type"),
            ('{"type": "ping", "payload": [1]}', "invalid_format"),
        ],
    )
    def test_error_reply_and_connection_stays_open(self, client, frame, code):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text(frame)
            error = ws.receive_json()

            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

        assert error["type"] == "error"
        assert error["payload"]["code"] == code

    def test_deletion_echo_without_id_rejected(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            _authenticate(ws)
            ws.send_json({"type": "deleteBudget", "payload": {}})
            error = ws.receive_json()

        assert error["payload"]["code"] == "invalid_format"

    def test_oversized_frame_closes_connection(self, verifier):
        app = create_app(
            settings=Settings(ws_max_message_size=1024),
            verifier=verifier,
        )
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_text("x" * 2048)
                error = ws.receive_json()
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_json()

        assert error["payload"]["code"] == "message_too_large"
        assert exc_info.value.code == 1009


class TestOrigin:

    def test_foreign_origin_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws", headers={"origin": "http://evil.example"}) as ws:
                ws.receive_json()

    def test_configured_origin_allowed(self, client):
        with client.websocket_connect("/ws", headers={"origin": "http://localhost:5173"}) as ws:
            assert ws.receive_json()["type"] == "welcome"

    def test_origins_come_from_application_settings(self, verifier):
        app = create_app(
            settings=Settings(allowed_origins="https://app.fintrack.example"),
            verifier=verifier,
        )
        with TestClient(app) as client:
            with client.websocket_connect(
                "/ws", headers={"origin": "https://app.fintrack.example"}
            ) as ws:
                assert ws.receive_json()["type"] == "welcome"

            with pytest.raises(WebSocketDisconnect):
                with client.websocket_connect("/ws", headers={"origin": "http://localhost:5173"}) as ws:
                    ws.receive_json()


class TestFanOut:

    def test_rest_mutation_reaches_only_acting_users_sessions(self, client):
        """Scenario: two u1 sessions receive transaction:added; the u2 session does not."""
        with client.websocket_connect("/ws") as tab1, \
                client.websocket_connect("/ws") as tab2, \
                client.websocket_connect("/ws") as other:
            for ws, token in ((tab1, "T"), (tab2, "T1b"), (other, "T2")):
                ws.receive_json()
                assert _authenticate(ws, token)["type"] == "authenticated"

            response = client.post(
                "/api/transactions",
                json={"type": "expense", "amount": 12.5, "category": "food", "date": "2024-05-01"},
                headers=auth_headers("T"),
            )
            assert response.status_code == 201
            created = response.json()

            first = tab1.receive_json()
            second = tab2.receive_json()

            other.send_json({"type": "ping"})
            assert other.receive_json()["type"] == "pong"

        assert first == second
        assert first["type"] == "transaction:added"
        assert first["payload"] == created

    def test_mutation_echo_goes_to_senders_own_sessions(self, client):
        with client.websocket_connect("/ws") as tab1, \
                client.websocket_connect("/ws") as tab2, \
                client.websocket_connect("/ws") as other:
            for ws, token in ((tab1, "T"), (tab2, "T"), (other, "T2")):
                ws.receive_json()
                _authenticate(ws, token)

            tab1.send_json({"type": "updateSavingsGoal", "payload": {"id": "g1", "current_amount": 50}})

            echoed_back = tab1.receive_json()
            relayed = tab2.receive_json()
            other.send_json({"type": "ping"})
            assert other.receive_json()["type"] == "pong"

        assert echoed_back == relayed == {
            "type": "savingsGoal:updated",
            "payload": {"id": "g1", "current_amount": 50},
        }

    def test_disconnect_unregisters(self, client, app):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            _authenticate(ws)
            assert len(app.state.manager.registry) == 1

        health = client.get("/ws/health").json()
        assert health["registry"]["total_connections"] == 0
        assert health["registry"]["total_removed"] == 1


class TestHealth:

    def test_gateway_health(self, client):
        response = client.get("/ws/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["liveness"]["running"] is True
        assert set(data) >= {"registry", "liveness", "auth", "dispatch"}

    def test_app_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["service"] == "rest-api"
        assert "X-Request-ID" in response.headers
