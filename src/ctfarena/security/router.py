"""Admin router: security log tail and team score integrity check."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.dependencies import get_current_admin
from ctfarena.config import get_settings
from ctfarena.database import get_session
from ctfarena.db.models import User
from ctfarena.leaderboard.service import find_team_score_drift
from ctfarena.schemas import ApiResponse, CamelModel
from ctfarena.security.event_log import format_log_entry, get_recent_logs

router = APIRouter(prefix="/api/admin", tags=["Admin"])


class SecurityLogsData(CamelModel):
    logs: list[str]


class TeamDrift(CamelModel):
    team_id: int
    team_name: str
    score: int
    member_sum: int


class IntegrityData(CamelModel):
    consistent: bool
    drift: list[TeamDrift]


@router.get("/logs", response_model=ApiResponse[SecurityLogsData])
async def security_logs(
    limit: int | None = Query(None, ge=1),
    _admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[SecurityLogsData]:
    """Most recent security events, newest first."""
    tail = get_settings().security_log_tail_limit
    entries = await get_recent_logs(db, limit=min(limit or tail, tail))
    return ApiResponse(
        message="Security logs retrieved",
        data=SecurityLogsData(logs=[format_log_entry(e) for e in entries]),
    )


@router.get("/team-integrity", response_model=ApiResponse[IntegrityData])
async def team_integrity(
    _admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[IntegrityData]:
    """Compare each team's stored aggregate with the sum of its members' scores."""
    drift = await find_team_score_drift(db)
    return ApiResponse(
        message="Team scores consistent" if not drift else "Team score drift detected",
        data=IntegrityData(consistent=not drift, drift=[TeamDrift(**d) for d in drift]),
    )
