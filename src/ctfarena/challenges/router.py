"""Challenge router: catalog, session window, hints, submissions and progress."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.dependencies import get_current_user
from ctfarena.challenges.schemas import (
    ChallengeDetail,
    ChallengeListData,
    ChallengeSummary,
    CompletedData,
    HintData,
    ProgressData,
    SessionStartData,
    SessionStatusData,
    SubmitData,
    SubmitRequest,
)
from ctfarena.challenges.scoring import submit_solution
from ctfarena.challenges.service import (
    get_completed_challenge_ids,
    get_progress,
    has_completed,
    list_challenges,
    require_challenge,
    reveal_hint,
)
from ctfarena.database import get_session
from ctfarena.db.models import Challenge, User
from ctfarena.dependencies import get_redis_dep
from ctfarena.schemas import ApiResponse
from ctfarena.sessions.clock import require_active_session, session_status, start_session

router = APIRouter(prefix="/api/challenges", tags=["Challenges"])


def _summary(challenge: Challenge) -> ChallengeSummary:
    return ChallengeSummary(
        id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        difficulty=challenge.difficulty,
        type=challenge.kind,
        points=challenge.points,
        hint_count=len(challenge.hints or []),
    )


def _require_window(user: User) -> None:
    if not user.is_admin:
        require_active_session(user)


@router.get("", response_model=ApiResponse[ChallengeListData])
async def get_challenges(
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[ChallengeListData]:
    """Public catalog, easiest first."""
    challenges = await list_challenges(db)
    return ApiResponse(
        message="Challenges retrieved",
        data=ChallengeListData(challenges=[_summary(c) for c in challenges], total=len(challenges)),
    )


@router.post("/session/start", response_model=ApiResponse[SessionStartData])
async def begin_session(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[SessionStartData]:
    """Accept the guidelines and open the challenge window (idempotent while active)."""
    now = datetime.now(timezone.utc)
    start = await start_session(db, user.id, now=now)
    # start_session re-reads the row into this session, so ``user`` is current.
    status = session_status(user, now)
    if start.started:
        message = "Challenge session started"
    elif status.active:
        message = "Challenge session already active"
    else:
        message = "Challenge session not available"
    return ApiResponse(
        message=message,
        data=SessionStartData(
            session_expiry=start.expiry,
            time_remaining=status.remaining_seconds if status.active else 0,
            started=start.started,
        ),
    )


@router.get("/session", response_model=ApiResponse[SessionStatusData])
async def get_session_status(
    user: User = Depends(get_current_user),
) -> ApiResponse[SessionStatusData]:
    status = session_status(user)
    return ApiResponse(
        message="Session status",
        data=SessionStatusData(
            session_expiry=status.expiry,
            time_remaining=status.remaining_seconds if status.active else 0,
            is_expired=status.expired,
            active=status.active,
            tab_switch_count=status.tab_switch_count,
            disqualified=status.disqualified,
        ),
    )


@router.get("/user/completed", response_model=ApiResponse[CompletedData])
async def get_user_completed(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[CompletedData]:
    completed = await get_completed_challenge_ids(db, user.id)
    return ApiResponse(message="Completed challenges", data=CompletedData(completed_challenges=completed))


@router.get("/user/progress", response_model=ApiResponse[ProgressData])
async def get_user_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[ProgressData]:
    progress = await get_progress(db, user)
    return ApiResponse(message="User progress", data=ProgressData(**progress))


@router.post("/submit", response_model=ApiResponse[SubmitData])
async def submit(
    body: SubmitRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
) -> ApiResponse[SubmitData]:
    """Verify a solution. Failures surface through the domain error handlers."""
    result = await submit_solution(db, user.id, body.challenge_id, body.solution, redis=redis)
    return ApiResponse(
        message="Challenge completed successfully",
        data=SubmitData(
            points=result.points_earned,
            total_score=result.total_score,
            completed_challenges=result.completed_challenges,
            notification=result.notification,
        ),
    )


@router.get("/{challenge_id}", response_model=ApiResponse[ChallengeDetail])
async def get_challenge_detail(
    challenge_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[ChallengeDetail]:
    """One challenge with its starter code. Participants need an active window."""
    _require_window(user)
    challenge = await require_challenge(db, challenge_id)
    summary = _summary(challenge)
    return ApiResponse(
        message="Challenge retrieved",
        data=ChallengeDetail(
            **summary.model_dump(),
            initial_code=challenge.initial_code,
            completed=await has_completed(db, user.id, challenge.id),
        ),
    )


@router.get("/{challenge_id}/hints/{index}", response_model=ApiResponse[HintData])
async def get_hint(
    challenge_id: str,
    index: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ApiResponse[HintData]:
    """Reveal one hint (0-based). Every request is logged."""
    _require_window(user)
    hint = await reveal_hint(db, user.id, challenge_id, index)
    return ApiResponse(message="Hint retrieved", data=HintData(index=index, hint=hint))
