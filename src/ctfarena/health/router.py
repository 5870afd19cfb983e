"""Liveness, readiness and version probes."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.challenges.service import count_challenges
from ctfarena.config import get_settings
from ctfarena.database import get_session
from ctfarena.redis_client import redis_status
from ctfarena.ws.manager import manager

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    response: Response,
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe.

    The database (and a readable challenge catalog) is required: without it
    the probe answers 503 ``unavailable``. Redis is optional; an unreachable
    Redis only makes the service ``degraded`` while ``disabled`` is fine.
    """
    checks: dict[str, object] = {}
    try:
        checks["challenges"] = await count_challenges(db)
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    checks["redis"] = await redis_status()
    checks["websockets"] = manager.connection_count

    if checks["database"] != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        state = "unavailable"
    elif str(checks["redis"]).startswith("error"):
        state = "degraded"
    else:
        state = "ready"
    return {"status": state, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
