"""Leaderboard router: public ranked views plus the caller's own rank."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.dependencies import get_current_user
from ctfarena.config import get_settings
from ctfarena.database import get_session
from ctfarena.db.models import User
from ctfarena.leaderboard.schemas import (
    ChallengeLeaderboardData,
    ChallengeSolver,
    Pagination,
    TeamDetailData,
    TeamLeaderboardData,
    TeamLeaderboardEntry,
    UserLeaderboardData,
    UserLeaderboardEntry,
    UserRankData,
)
from ctfarena.leaderboard.service import (
    get_challenge_leaderboard,
    get_team_details,
    get_team_leaderboard,
    get_user_leaderboard,
    get_user_rank,
)
from ctfarena.schemas import ApiResponse

router = APIRouter(prefix="/api/leaderboard", tags=["Leaderboard"])


@router.get("/users", response_model=ApiResponse[UserLeaderboardData])
async def users_leaderboard(
    limit: int | None = Query(None, ge=1),
    page: int = Query(1, ge=1),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[UserLeaderboardData]:
    """Users by score DESC, username ASC."""
    settings = get_settings()
    limit = min(limit or settings.leaderboard_default_limit, settings.leaderboard_max_limit)
    data = await get_user_leaderboard(db, limit=limit, page=page)
    return ApiResponse(
        message="User leaderboard",
        data=UserLeaderboardData(
            leaderboard=[UserLeaderboardEntry(**e) for e in data["entries"]],
            pagination=Pagination(
                total=data["total"],
                page=data["page"],
                limit=data["limit"],
                pages=data["pages"],
                has_more=data["has_more"],
            ),
        ),
    )


@router.get("/teams", response_model=ApiResponse[TeamLeaderboardData])
async def teams_leaderboard(
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[TeamLeaderboardData]:
    """Teams by aggregate score DESC, name ASC."""
    rows = await get_team_leaderboard(db)
    return ApiResponse(
        message="Team leaderboard",
        data=TeamLeaderboardData(leaderboard=[TeamLeaderboardEntry(**r) for r in rows]),
    )


@router.get("/teams/{team_id}", response_model=ApiResponse[TeamDetailData])
async def team_detail(
    team_id: int,
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[TeamDetailData]:
    data = await get_team_details(db, team_id)
    return ApiResponse(message="Team details", data=TeamDetailData(**data))


@router.get("/challenges/{challenge_id}", response_model=ApiResponse[ChallengeLeaderboardData])
async def challenge_leaderboard(
    challenge_id: str,
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[ChallengeLeaderboardData]:
    """First solvers of one challenge."""
    data = await get_challenge_leaderboard(db, challenge_id)
    return ApiResponse(
        message="Challenge leaderboard",
        data=ChallengeLeaderboardData(
            challenge_id=data["challenge_id"],
            challenge_title=data["challenge_title"],
            leaderboard=[ChallengeSolver(**e) for e in data["entries"]],
        ),
    )


@router.get("/me", response_model=ApiResponse[UserRankData])
async def my_rank(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[UserRankData]:
    data = await get_user_rank(db, user.id)
    return ApiResponse(message="User rank", data=UserRankData(**data))
