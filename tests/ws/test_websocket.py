"""WebSocket endpoint tests over Starlette's TestClient."""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from ctfarena.auth.jwt import create_access_token
from ctfarena.main import create_app


@pytest.fixture
def ws_client() -> TestClient:
    return TestClient(create_app())


def test_rejects_bad_token(ws_client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with ws_client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()
    assert exc_info.value.code == 4001


def test_protocol(ws_client: TestClient) -> None:
    token = create_access_token(5, "alice")
    with ws_client.websocket_connect(f"/ws?token={token}") as ws:
        assert ws.receive_json() == {
            "type": "connected",
            "userId": 5,
            "channels": ["session"],
            "heartbeatSeconds": 30,
        }

        ws.send_json({"action": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_json({"action": "subscribe", "channel": "leaderboard"})
        assert ws.receive_json() == {"type": "subscribed", "channel": "leaderboard"}

        ws.send_json({"action": "subscribe", "channel": "mining"})
        assert ws.receive_json() == {"type": "error", "message": "Invalid channel: mining"}

        ws.send_json({"action": "unsubscribe", "channel": "leaderboard"})
        assert ws.receive_json() == {"type": "unsubscribed", "channel": "leaderboard"}

        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}

        ws.send_json(["subscribe"])
        assert ws.receive_json() == {"type": "error", "message": "Invalid message"}

        ws.send_json({"action": "dance"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown action: dance"}
