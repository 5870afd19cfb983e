"""Unit tests for the WebSocket ConnectionManager."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from ctfarena.ws.manager import IDLE_CLOSE_CODE, LEADERBOARD, SESSION, VALID_CHANNELS, ConnectionManager


@pytest.fixture
def mgr() -> ConnectionManager:
    """Fresh ConnectionManager for each test."""
    return ConnectionManager()


def _make_ws(*, fail_send: bool = False) -> MagicMock:
    ws = AsyncMock()
    ws.accept = AsyncMock()
    if fail_send:
        ws.send_text = AsyncMock(side_effect=RuntimeError("connection closed"))
    else:
        ws.send_text = AsyncMock()
    return ws


def test_channels() -> None:
    assert VALID_CHANNELS == {"leaderboard", "session"}


class TestConnect:
    async def test_connect_registers_client(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "conn-1", user_id=42, username="alice")
        ws.accept.assert_awaited_once()
        assert mgr.connection_count == 1
        assert mgr.get_stats() == {"total_connections": 1, "unique_users": 1, "channels": {SESSION: 1}}

    async def test_multiple_tabs_same_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42, username="alice")
        await mgr.connect(_make_ws(), "conn-2", user_id=42, username="alice")
        assert mgr.connection_count == 2
        assert mgr.get_stats()["unique_users"] == 1

    async def test_disconnect_cleans_up(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42, username="alice")
        await mgr.subscribe("conn-1", LEADERBOARD)
        await mgr.disconnect("conn-1")
        assert mgr.connection_count == 0
        assert mgr.get_stats()["unique_users"] == 0
        assert mgr.get_stats()["channels"] == {}

    async def test_disconnect_unknown_is_noop(self, mgr: ConnectionManager) -> None:
        await mgr.disconnect("nonexistent")
        assert mgr.connection_count == 0


class TestSubscribe:
    async def test_valid_channel(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42, username="alice")
        assert await mgr.subscribe("conn-1", LEADERBOARD) is True
        assert mgr.get_stats()["channels"] == {LEADERBOARD: 1, SESSION: 1}

    async def test_invalid_channel(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42, username="alice")
        assert await mgr.subscribe("conn-1", "mining") is False

    async def test_unknown_connection(self, mgr: ConnectionManager) -> None:
        assert await mgr.subscribe("ghost", LEADERBOARD) is False
        assert await mgr.unsubscribe("ghost", LEADERBOARD) is False

    async def test_unsubscribe_stops_delivery(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "conn-1", user_id=42, username="alice")
        await mgr.subscribe("conn-1", LEADERBOARD)
        await mgr.unsubscribe("conn-1", LEADERBOARD)
        assert await mgr.broadcast_to_channel(LEADERBOARD, {"x": 1}) == 0
        ws.send_text.assert_not_awaited()


class TestBroadcast:
    async def test_reaches_subscribers_only(self, mgr: ConnectionManager) -> None:
        subscribed, idle = _make_ws(), _make_ws()
        await mgr.connect(subscribed, "conn-1", user_id=1, username="alice")
        await mgr.connect(idle, "conn-2", user_id=2, username="bob")
        await mgr.subscribe("conn-1", LEADERBOARD)

        sent = await mgr.broadcast_to_channel(LEADERBOARD, {"type": "leaderboard_update", "userId": 1})

        assert sent == 1
        payload = json.loads(subscribed.send_text.await_args.args[0])
        assert payload == {"channel": "leaderboard", "data": {"type": "leaderboard_update", "userId": 1}}
        idle.send_text.assert_not_awaited()

    async def test_failed_socket_is_dropped(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(fail_send=True), "conn-1", user_id=1, username="alice")
        await mgr.subscribe("conn-1", LEADERBOARD)
        assert await mgr.broadcast_to_channel(LEADERBOARD, {}) == 0
        assert mgr.connection_count == 0

    async def test_empty_channel(self, mgr: ConnectionManager) -> None:
        assert await mgr.broadcast_to_channel(LEADERBOARD, {}) == 0


class TestSendToUser:
    async def test_every_subscribed_tab(self, mgr: ConnectionManager) -> None:
        tab1, tab2, other = _make_ws(), _make_ws(), _make_ws()
        await mgr.connect(tab1, "c1", user_id=7, username="carol")
        await mgr.connect(tab2, "c2", user_id=7, username="carol")
        await mgr.connect(other, "c3", user_id=8, username="dave")
        for conn_id in ("c1", "c2", "c3"):
            await mgr.subscribe(conn_id, SESSION)

        sent = await mgr.send_to_user(7, SESSION, {"type": "session_terminated", "payload": {}})

        assert sent == 2
        other.send_text.assert_not_awaited()

    async def test_session_is_default(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "c1", user_id=7, username="carol")
        assert await mgr.send_to_user(7, SESSION, {"type": "challenge_completed"}) == 1
        frame = json.loads(ws.send_text.await_args.args[0])
        assert frame == {"channel": "session", "data": {"type": "challenge_completed"}}

    async def test_requires_subscription(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "c1", user_id=7, username="carol")
        await mgr.unsubscribe("c1", SESSION)
        assert await mgr.send_to_user(7, SESSION, {"type": "x"}) == 0
        ws.send_text.assert_not_awaited()


class TestPruneIdle:
    async def test_reaps_only_silent_connections(self, mgr: ConnectionManager) -> None:
        quiet, chatty = _make_ws(), _make_ws()
        await mgr.connect(quiet, "quiet", user_id=1, username="alice")
        await mgr.connect(chatty, "chatty", user_id=2, username="bob")
        mgr._connections["quiet"].last_seen = 100.0
        mgr._connections["chatty"].last_seen = 150.0

        pruned = await mgr.prune_idle(60, now=170.0)

        assert pruned == 1
        quiet.close.assert_awaited_once_with(code=IDLE_CLOSE_CODE)
        chatty.close.assert_not_awaited()
        assert mgr.connection_count == 1

    async def test_touch_refreshes(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "c1", user_id=1, username="alice")
        mgr._connections["c1"].last_seen = 0.0
        mgr.touch("c1")
        assert await mgr.prune_idle(60) == 0


async def test_reaper_keeps_running_after_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    from ctfarena import main

    prune = AsyncMock(side_effect=[RuntimeError("boom"), 0, asyncio.CancelledError()])
    monkeypatch.setattr(main.manager, "prune_idle", prune)

    with pytest.raises(asyncio.CancelledError):
        await main._reap_idle_connections(0)

    assert prune.await_count == 3
