"""Bridges Redis pub/sub to WebSocket clients.

Subscribes to the broadcast channels the scoring engine publishes to and
pattern-subscribes to ``ws:user:*`` for personal events, then fans messages
out through the connection manager.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from ctfarena.ws.manager import LEADERBOARD, SESSION, ConnectionManager, manager
from ctfarena.ws.publish import LEADERBOARD_CHANNEL

logger = structlog.get_logger()

USER_PATTERN = "ws:user:*"

# Map Redis pub/sub channels to WebSocket channels
CHANNEL_MAP: dict[str, str] = {
    LEADERBOARD_CHANNEL: LEADERBOARD,
}


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis, connections: ConnectionManager = manager) -> None:
        self.redis = redis_client
        self.connections = connections
        self._running = False

    async def start(self) -> None:
        """Listen until stopped or cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(*CHANNEL_MAP.keys())
        await pubsub.psubscribe(USER_PATTERN)

        logger.info("pubsub_bridge_started", channels=list(CHANNEL_MAP.keys()), patterns=[USER_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                try:
                    await self.dispatch(message)
                except Exception:
                    logger.exception("pubsub_dispatch_failed", channel=message.get("channel"))
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe()
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def dispatch(self, message: dict) -> int:
        """Route one pub/sub message. Returns the number of sockets reached."""
        msg_type = message.get("type", "")
        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        # Per-user messages (pattern match on ws:user:*)
        if msg_type == "pmessage" and redis_channel.startswith("ws:user:"):
            try:
                user_id = int(redis_channel.split(":")[-1])
            except ValueError:
                logger.warning("pubsub_invalid_user_id", channel=redis_channel)
                return 0

            event_type = payload.get("event", "notification")
            sent = await self.connections.send_to_user(user_id, SESSION, {
                "type": event_type,
                "payload": payload.get("data", payload),
            })
            if sent > 0:
                logger.debug("user_notification_sent", user_id=user_id, event_type=event_type, recipients=sent)
            return sent

        # Broadcast messages (exact channel match)
        ws_channel = CHANNEL_MAP.get(redis_channel)
        if ws_channel is None:
            return 0

        sent = await self.connections.broadcast_to_channel(ws_channel, {
            "type": redis_channel.split(":")[-1],
            **payload,
        })
        if sent > 0:
            logger.debug("pubsub_broadcast", channel=ws_channel, recipients=sent)
        return sent

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
