"""Shared test fixtures.

Every test gets a fresh SQLite database (aiosqlite) in its own temp directory,
built from the ORM metadata. Redis is never initialized, so rate limiting and
push publishing are skipped.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

os.environ.setdefault("CTF_JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("CTF_LOG_FORMAT", "console")
os.environ.setdefault("CTF_ADMIN_EMAIL", "")

from ctfarena.auth.jwt import create_access_token, reset_keys  # noqa: E402
from ctfarena.auth.service import ensure_admin_account, register_user  # noqa: E402
from ctfarena.challenges.seed import seed_challenges  # noqa: E402
from ctfarena.config import get_settings  # noqa: E402
from ctfarena.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from ctfarena.db.base import Base  # noqa: E402
from ctfarena.db.models import Challenge, User  # noqa: E402
from ctfarena.main import create_app  # noqa: E402
from ctfarena.sessions.clock import start_session  # noqa: E402

TEST_PASSWORD = "SecureP@ss1"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminP@ss1"


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in a temp SQLite file; yields the session factory."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'ctfarena_test.db'}"
    os.environ["CTF_DATABASE_URL"] = url
    get_settings.cache_clear()
    reset_keys()

    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield get_session_factory()

    await close_db()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def session_factory(database: async_sessionmaker[AsyncSession]) -> async_sessionmaker[AsyncSession]:
    """Factory for independent sessions (concurrency tests, fresh reads)."""
    return database


@pytest_asyncio.fixture
async def db_session(database: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for test setup and assertions."""
    async with database() as session:
        yield session


@pytest_asyncio.fixture
async def challenges(db_session: AsyncSession) -> dict[str, Challenge]:
    """Seeded catalog keyed by title."""
    from sqlalchemy import select

    await seed_challenges(db_session)
    result = await db_session.execute(select(Challenge))
    return {c.title: c for c in result.scalars().all()}


@pytest_asyncio.fixture
async def client(database: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app (lifespan not run; the database fixture stands in)."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def make_user(
    db: AsyncSession,
    username: str,
    team_name: str,
    *,
    join: bool = False,
    email: str | None = None,
) -> User:
    """Register a participant directly through the identity store."""
    return await register_user(
        db,
        username=username,
        email=email or f"{username.lower()}@example.com",
        password=TEST_PASSWORD,
        team_name=team_name,
        registration_type="join" if join else "create",
    )


async def make_active_user(
    db: AsyncSession,
    username: str,
    team_name: str,
    *,
    join: bool = False,
    now: datetime | None = None,
) -> User:
    """Register a participant and open their challenge window."""
    user = await make_user(db, username, team_name, join=join)
    await start_session(db, user.id, now=now or datetime.now(timezone.utc))
    return user


async def make_admin(db: AsyncSession) -> User:
    user = await ensure_admin_account(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert user is not None
    return user


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.username, is_admin=user.is_admin)
    return {"Authorization": f"Bearer {token}"}


async def api_register(
    client: AsyncClient,
    username: str,
    team_name: str,
    *,
    registration_type: str = "create",
) -> dict:
    """Register through the HTTP API; returns the envelope's ``data``."""
    response = await client.post("/api/auth/register", json={
        "username": username,
        "email": f"{username.lower()}@example.com",
        "password": TEST_PASSWORD,
        "teamName": team_name,
        "registrationType": registration_type,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def api_login(client: AsyncClient, username: str, team_name: str) -> dict:
    response = await client.post("/api/auth/login", json={
        "email": f"{username.lower()}@example.com",
        "teamName": team_name,
    })
    assert response.status_code == 200, response.text
    return response.json()["data"]
