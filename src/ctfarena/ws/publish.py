"""Publish scoring and session events over Redis pub/sub.

The bridge (``ctfarena.ws.bridge``) subscribes to the broadcast channels and
pattern-subscribes to ``ws:user:*`` for per-user delivery. Publishing is
best-effort: a missing or failing Redis never fails the request that caused
the event.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

LEADERBOARD_CHANNEL = "pubsub:leaderboard_update"


async def publish_broadcast(redis: object | None, channel: str, payload: dict[str, Any]) -> None:
    """Publish a payload to a broadcast channel."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish to %s", channel, exc_info=True)


async def publish_user_event(redis: object | None, user_id: int, event: str, data: dict[str, Any]) -> None:
    """Publish ``{"event", "data"}`` to ``ws:user:{user_id}``."""
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            f"ws:user:{user_id}",
            json.dumps({"event": event, "data": data}),
        )
    except Exception:
        logger.warning("Failed to push %s via ws:user:%s", event, user_id, exc_info=True)
