"""Authentication router: all /api/auth/* endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.dependencies import get_current_user
from ctfarena.auth.jwt import create_access_token
from ctfarena.auth.schemas import (
    AdminLoginRequest,
    LoginRequest,
    RegisterRequest,
    TabSwitchResponse,
    TokenData,
    UserResponse,
)
from ctfarena.auth.service import (
    RegistrationError,
    get_team_by_id,
    get_user_by_id,
    lookup_user_by_email_and_team,
    register_user,
    verify_admin_credentials,
)
from ctfarena.challenges.service import get_completed_challenge_ids
from ctfarena.database import get_session
from ctfarena.db.models import User
from ctfarena.dependencies import get_redis_dep
from ctfarena.schemas import ApiResponse
from ctfarena.sessions.clock import is_session_active, remaining_seconds, start_session
from ctfarena.sessions.monitor import record_tab_switch

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


async def build_user_response(db: AsyncSession, user: User, now: datetime | None = None) -> UserResponse:
    """Build a UserResponse from a User row plus its team and completed set."""
    now = now or datetime.now(timezone.utc)
    team_name = None
    if user.team_id is not None:
        team = await get_team_by_id(db, user.team_id)
        team_name = team.name if team is not None else None
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        team_id=user.team_id,
        team_name=team_name,
        role=user.team_role,
        is_admin=user.is_admin,
        disqualified=user.disqualified,
        score=user.score,
        completed_challenges=await get_completed_challenge_ids(db, user.id),
        session_expiry=user.session_expiry,
        time_remaining=remaining_seconds(user, now) if is_session_active(user, now) else 0,
        tab_switch_count=user.tab_switch_count,
    )


async def _token_data(db: AsyncSession, user: User) -> TokenData:
    token = create_access_token(user.id, user.username, is_admin=user.is_admin)
    return TokenData(token=token, user=await build_user_response(db, user))


async def _reload(db: AsyncSession, user_id: int) -> User:
    user = await get_user_by_id(db, user_id, refresh=True)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return user


@router.post("/register", response_model=ApiResponse[TokenData], status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[TokenData]:
    """Register a participant and create or join a team."""
    try:
        user = await register_user(
            db,
            username=body.username,
            email=body.email,
            password=body.password,
            team_name=body.team_name,
            registration_type=body.registration_type,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ApiResponse(message="User registered successfully", data=await _token_data(db, user))


@router.post("/login", response_model=ApiResponse[TokenData])
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[TokenData]:
    """Participant login by email and team name. Opens a challenge window if none is active."""
    user = await lookup_user_by_email_and_team(db, body.email, body.team_name)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user.last_login = datetime.now(timezone.utc)
    await db.commit()

    if not user.is_admin:
        await start_session(db, user.id)
    user = await _reload(db, user.id)

    logger.info("user_login", user_id=user.id)
    return ApiResponse(message="Login successful", data=await _token_data(db, user))


@router.post("/admin-login", response_model=ApiResponse[TokenData])
async def admin_login(
    body: AdminLoginRequest,
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[TokenData]:
    """Admin login by email and password. Admins have no challenge clock."""
    user = await verify_admin_credentials(db, body.email, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user.last_login = datetime.now(timezone.utc)
    await db.commit()

    logger.info("admin_login", user_id=user.id)
    return ApiResponse(message="Admin login successful", data=await _token_data(db, user))


@router.get("/me", response_model=ApiResponse[UserResponse])
async def me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[UserResponse]:
    """Return the current user's profile and session state."""
    return ApiResponse(message="User profile", data=await build_user_response(db, user))


@router.post("/tab-switch", response_model=ApiResponse[TabSwitchResponse])
async def tab_switch(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
) -> ApiResponse[TabSwitchResponse]:
    """Record one focus loss reported by the browser."""
    result = await record_tab_switch(db, user.id, redis=redis)
    if result.disqualified:
        message = "Session terminated due to excessive tab switching"
    elif result.recorded:
        message = "Tab switch recorded"
    else:
        message = "No active session"
    return ApiResponse(
        message=message,
        data=TabSwitchResponse(
            tab_switch_count=result.tab_switch_count,
            max_tab_switches=result.max_tab_switches,
            disqualified=result.disqualified,
            is_session_terminated=result.session_terminated,
        ),
    )
