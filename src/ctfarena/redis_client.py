"""Optional Redis connection.

Redis backs rate limiting and the WebSocket push channel. Neither is required
for scoring, so every caller must cope with the pool being absent.
"""

import redis.asyncio as redis
import structlog

from ctfarena.config import get_settings

logger = structlog.get_logger()

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Create the pool unless Redis is disabled in settings."""
    global _pool  # noqa: PLW0603
    if not get_settings().redis_enabled:
        logger.info("redis_disabled")
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        socket_connect_timeout=2,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """The client; raises RuntimeError when Redis was never initialized."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def get_optional_redis() -> redis.Redis | None:
    """The client, or None. Push notifications take this instead of failing."""
    return _pool


def redis_key(*parts: object) -> str:
    """Namespaced key, e.g. ``ctfarena:ratelimit:10.0.0.1:2871``."""
    return ":".join([get_settings().redis_key_prefix, *(str(p) for p in parts)])


async def redis_status() -> str:
    """``ok``, ``disabled`` (never initialized) or ``error: <reason>``."""
    if _pool is None:
        return "disabled"
    try:
        await _pool.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"
