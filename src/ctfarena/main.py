"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ctfarena.auth.router import router as auth_router
from ctfarena.auth.service import ensure_admin_account
from ctfarena.challenges.router import router as challenges_router
from ctfarena.challenges.seed import seed_challenges
from ctfarena.config import get_settings
from ctfarena.database import close_db, get_session, init_db
from ctfarena.health.router import router as health_router
from ctfarena.leaderboard.router import router as leaderboard_router
from ctfarena.middleware import setup_middleware
from ctfarena.redis_client import close_redis, get_optional_redis, init_redis
from ctfarena.security.router import router as admin_router
from ctfarena.ws.bridge import PubSubBridge
from ctfarena.ws.manager import manager
from ctfarena.ws.router import router as ws_router

logger = logging.getLogger(__name__)


async def _seed() -> None:
    """Seed the catalog and the bootstrap admin (both idempotent)."""
    settings = get_settings()
    try:
        async for db in get_session():
            if settings.seed_challenges:
                await seed_challenges(db)
            await ensure_admin_account(
                db,
                settings.admin_email,
                settings.admin_password,
                username=settings.admin_username,
            )
            break
    except Exception:
        logger.warning("Seeding failed (tables may not exist yet)", exc_info=True)


async def _reap_idle_connections(interval: int) -> None:
    """Close sockets that missed two heartbeats."""
    while True:
        await asyncio.sleep(interval)
        try:
            await manager.prune_idle(interval * 2)
        except Exception:
            logger.exception("Idle WebSocket reaping failed")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    await _seed()

    # Redis pub/sub -> WebSocket bridge, only when Redis is configured
    redis = get_optional_redis()
    bridge = PubSubBridge(redis) if redis is not None else None
    bridge_task = asyncio.create_task(bridge.start()) if bridge is not None else None
    reaper_task = asyncio.create_task(_reap_idle_connections(settings.ws_heartbeat_interval_seconds))

    yield

    reaper_task.cancel()
    try:
        await reaper_task
    except asyncio.CancelledError:
        pass

    if bridge is not None and bridge_task is not None:
        await bridge.stop()
        bridge_task.cancel()
        try:
            await bridge_task
        except asyncio.CancelledError:
            pass

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CTF Arena API",
        description="Backend API for CTF Arena: timed team challenges, scoring and leaderboards",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(challenges_router)
    app.include_router(leaderboard_router)
    app.include_router(admin_router)
    app.include_router(ws_router)

    return app


app = create_app()
