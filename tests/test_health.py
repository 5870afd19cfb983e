"""Health endpoint tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from ctfarena import redis_client


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_readiness_without_redis(client: AsyncClient, challenges: dict) -> None:
    """Redis is optional: an uninitialized pool reports ``disabled`` and the service is ready."""
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"challenges": len(challenges), "database": "ok", "redis": "disabled", "websockets": 0},
    }


@pytest.mark.asyncio
async def test_readiness_degraded_when_redis_fails(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    broken = MagicMock()
    broken.ping = AsyncMock(side_effect=ConnectionError("refused"))
    monkeypatch.setattr(redis_client, "_pool", broken)

    response = await client.get("/ready")
    data = response.json()
    assert response.status_code == 200
    assert data["status"] == "degraded"
    assert data["checks"]["redis"] == "error: refused"


@pytest.mark.asyncio
async def test_version(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": "0.1.0", "environment": "development"}
