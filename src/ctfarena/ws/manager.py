"""WebSocket connection registry and fan-out.

Two channels exist. ``leaderboard`` is opt-in and receives a frame after
every credited submission. ``session`` carries one user's personal events
(credits, session termination); every connection is on it from the start.
Connections that stay silent for too long are reaped by ``prune_idle``.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()

LEADERBOARD = "leaderboard"
SESSION = "session"
VALID_CHANNELS = {LEADERBOARD, SESSION}

# Close code sent to connections reaped for inactivity
IDLE_CLOSE_CODE = 4008


@dataclass
class ClientConnection:
    websocket: WebSocket
    user_id: int
    username: str
    subscriptions: set[str] = field(default_factory=lambda: {SESSION})
    last_seen: float = field(default_factory=time.monotonic)
    messages_sent: int = 0


class ConnectionManager:
    """Registry of open sockets keyed by connection id, channel and user."""

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._channels: dict[str, set[str]] = defaultdict(set)
        self._user_connections: dict[int, set[str]] = defaultdict(set)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int, username: str) -> None:
        await websocket.accept()
        client = ClientConnection(websocket=websocket, user_id=user_id, username=username)
        self._connections[conn_id] = client
        for channel in client.subscriptions:
            self._channels[channel].add(conn_id)
        self._user_connections[user_id].add(conn_id)
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        """Forget a connection. Unknown ids are ignored."""
        client = self._connections.pop(conn_id, None)
        if client is None:
            return

        for channel in client.subscriptions:
            self._channels[channel].discard(conn_id)
        tabs = self._user_connections[client.user_id]
        tabs.discard(conn_id)
        if not tabs:
            del self._user_connections[client.user_id]

        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id, sent=client.messages_sent)

    def touch(self, conn_id: str) -> None:
        client = self._connections.get(conn_id)
        if client is not None:
            client.last_seen = time.monotonic()

    async def subscribe(self, conn_id: str, channel: str) -> bool:
        """Returns False for an unknown connection or channel."""
        client = self._connections.get(conn_id)
        if client is None or channel not in VALID_CHANNELS:
            return False
        client.subscriptions.add(channel)
        self._channels[channel].add(conn_id)
        return True

    async def unsubscribe(self, conn_id: str, channel: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.subscriptions.discard(channel)
        self._channels[channel].discard(conn_id)
        return True

    async def _send(self, conn_id: str, frame: str) -> bool:
        """Deliver one frame; a socket that fails to send is dropped."""
        client = self._connections.get(conn_id)
        if client is None:
            return False
        try:
            await client.websocket.send_text(frame)
        except Exception:
            logger.debug("ws_send_failed", conn_id=conn_id)
            await self.disconnect(conn_id)
            return False
        client.messages_sent += 1
        return True

    async def _deliver(self, conn_ids: list[str], channel: str, message: dict) -> int:
        frame = json.dumps({"channel": channel, "data": message}, default=str)
        sent = 0
        for conn_id in conn_ids:
            if await self._send(conn_id, frame):
                sent += 1
        return sent

    async def broadcast_to_channel(self, channel: str, message: dict) -> int:
        """Send to every subscriber of ``channel``; returns how many sockets got it."""
        return await self._deliver(list(self._channels.get(channel, ())), channel, message)

    async def send_to_user(self, user_id: int, channel: str, message: dict) -> int:
        """Send to each of one user's sockets that is on ``channel``."""
        conn_ids = [
            conn_id
            for conn_id in self._user_connections.get(user_id, ())
            if channel in self._connections[conn_id].subscriptions
        ]
        return await self._deliver(conn_ids, channel, message)

    async def prune_idle(self, max_idle_seconds: float, now: float | None = None) -> int:
        """Close and forget connections silent for longer than ``max_idle_seconds``."""
        now = time.monotonic() if now is None else now
        stale = [cid for cid, c in self._connections.items() if now - c.last_seen > max_idle_seconds]
        for conn_id in stale:
            client = self._connections[conn_id]
            try:
                await client.websocket.close(code=IDLE_CLOSE_CODE)
            except Exception:
                logger.debug("ws_close_failed", conn_id=conn_id)
            await self.disconnect(conn_id)
        if stale:
            logger.info("ws_pruned_idle", count=len(stale))
        return len(stale)

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "channels": {ch: len(conns) for ch, conns in self._channels.items() if conns},
        }


manager = ConnectionManager()
