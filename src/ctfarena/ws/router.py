"""WebSocket endpoint: bearer token in the query string, JSON actions in, channel frames out."""

import json
import uuid

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ctfarena.auth.jwt import verify_token
from ctfarena.config import get_settings
from ctfarena.errors import InvalidToken
from ctfarena.ws.manager import SESSION, VALID_CHANNELS, manager

logger = structlog.get_logger()

router = APIRouter()

AUTH_FAILED_CLOSE_CODE = 4001


def _reply_to(msg: object) -> dict:
    if not isinstance(msg, dict):
        return {"type": "error", "message": "Invalid message"}

    action = msg.get("action")
    channel = msg.get("channel", "")
    if action == "ping":
        return {"type": "pong"}
    if action in ("subscribe", "unsubscribe") and channel not in VALID_CHANNELS:
        return {"type": "error", "message": f"Invalid channel: {channel}"}
    if action == "subscribe":
        return {"type": "subscribed", "channel": channel}
    if action == "unsubscribe":
        return {"type": "unsubscribed", "channel": channel}
    return {"type": "error", "message": f"Unknown action: {action}"}


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Live leaderboard and personal session events.

    Client -> Server::

        {"action": "subscribe" | "unsubscribe", "channel": "leaderboard"}
        {"action": "ping"}

    Server -> Client::

        {"type": "connected", "userId": 1, "channels": ["session"], "heartbeatSeconds": 30}
        {"channel": "leaderboard", "data": {"type": "leaderboard_update", ...}}
        {"channel": "session", "data": {"type": "session_terminated", "payload": {...}}}
        {"type": "pong" | "subscribed" | "unsubscribed" | "error", ...}

    Any frame from the client counts as a heartbeat.
    """
    try:
        claims = verify_token(token)
    except InvalidToken as e:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=f"Authentication failed: {e.message}")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, claims.user_id, claims.username)
    await websocket.send_json({
        "type": "connected",
        "userId": claims.user_id,
        "channels": [SESSION],
        "heartbeatSeconds": get_settings().ws_heartbeat_interval_seconds,
    })

    try:
        while True:
            raw = await websocket.receive_text()
            manager.touch(conn_id)
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            reply = _reply_to(msg)
            if reply["type"] == "subscribed":
                await manager.subscribe(conn_id, reply["channel"])
            elif reply["type"] == "unsubscribed":
                await manager.unsubscribe(conn_id, reply["channel"])
            await websocket.send_json(reply)

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
