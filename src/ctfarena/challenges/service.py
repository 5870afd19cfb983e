"""Challenge catalog reads, hints and per-user progress."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.challenges.kinds import Difficulty
from ctfarena.db.models import Challenge, ChallengeCompletion, User
from ctfarena.errors import ChallengeNotFound, HintNotFound
from ctfarena.leaderboard.ranking import completion_percentage
from ctfarena.security.event_log import SecurityEventType, append_event
from ctfarena.sessions.clock import is_session_active, remaining_seconds

_difficulty_order = case(
    {d.value: d.rank for d in Difficulty},
    value=Challenge.difficulty,
    else_=len(Difficulty),
)


async def list_challenges(db: AsyncSession) -> list[Challenge]:
    """All challenges, easiest tier first, then by points."""
    result = await db.execute(
        select(Challenge).order_by(_difficulty_order, Challenge.points, Challenge.title)
    )
    return list(result.scalars().all())


async def get_challenge(db: AsyncSession, challenge_id: str) -> Challenge | None:
    result = await db.execute(select(Challenge).where(Challenge.id == challenge_id))
    return result.scalar_one_or_none()


async def require_challenge(db: AsyncSession, challenge_id: str) -> Challenge:
    challenge = await get_challenge(db, challenge_id)
    if challenge is None:
        raise ChallengeNotFound()
    return challenge


async def count_challenges(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(Challenge.id)))
    return int(result.scalar_one())


async def has_completed(db: AsyncSession, user_id: int, challenge_id: str) -> bool:
    result = await db.execute(
        select(ChallengeCompletion.id)
        .where(
            ChallengeCompletion.user_id == user_id,
            ChallengeCompletion.challenge_id == challenge_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_completed_challenge_ids(db: AsyncSession, user_id: int) -> list[str]:
    """The user's completed set, in the order the credits were committed."""
    result = await db.execute(
        select(ChallengeCompletion.challenge_id)
        .where(ChallengeCompletion.user_id == user_id)
        .order_by(ChallengeCompletion.id)
    )
    return list(result.scalars().all())


async def reveal_hint(db: AsyncSession, user_id: int, challenge_id: str, index: int) -> str:
    """Return hint ``index`` (0-based) and log the request."""
    challenge = await require_challenge(db, challenge_id)
    hints = challenge.hints or []
    if index < 0 or index >= len(hints) or not hints[index]:
        raise HintNotFound()

    append_event(
        db,
        SecurityEventType.HINT_REQUESTED,
        user_id,
        f"Requested hint #{index + 1} for challenge: {challenge.title}",
        challenge_id=challenge.id,
    )
    await db.commit()
    return hints[index]


async def get_progress(db: AsyncSession, user: User, now: datetime | None = None) -> dict:
    """Score, completion percentage and session state for one user."""
    now = now or datetime.now(timezone.utc)
    completed = await get_completed_challenge_ids(db, user.id)
    total = await count_challenges(db)
    active = is_session_active(user, now)
    return {
        "score": user.score,
        "completed_challenges": len(completed),
        "total_challenges": total,
        "completion_percentage": completion_percentage(len(completed), total),
        "session_expiry": user.session_expiry,
        "session_active": active,
        "time_remaining": remaining_seconds(user, now) if active else None,
        "tab_switch_count": user.tab_switch_count,
    }
