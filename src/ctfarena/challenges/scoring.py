"""Submission verification and scoring engine.

``submit_solution`` checks its preconditions in a fixed order, each failing
with its own error: session not active, challenge already completed, unknown
challenge, wrong answer. A wrong answer is the only failure that writes
anything (a failed attempt and a FAILED_SOLUTION log entry).

A correct answer is credited in one transaction that
1. re-reads the completed set under the user's lock and aborts with
   AlreadyCompleted if another request got there first,
2. inserts the completion row (unique per user and challenge),
3. increments the user's score, then the team's aggregate by the same amount,
4. appends the successful attempt and the SUCCESSFUL_SOLUTION entry.

The re-check plus the unique key make retries safe: a transient store failure
is retried once, and at most one credit per (user, challenge) is ever written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.service import get_user_by_id, get_user_for_update
from ctfarena.challenges.service import get_challenge, get_completed_challenge_ids, has_completed
from ctfarena.db.models import Attempt, Challenge, ChallengeCompletion, Team, User
from ctfarena.errors import (
    AlreadyCompleted,
    ChallengeNotFound,
    IncorrectSolution,
    StoreInvariantViolation,
    StoreTransient,
    UserNotFound,
)
from ctfarena.security.event_log import SecurityEventType, append_event
from ctfarena.sessions.clock import require_active_session
from ctfarena.sessions.locks import user_locks
from ctfarena.ws.publish import LEADERBOARD_CHANNEL, publish_broadcast, publish_user_event

logger = structlog.get_logger()

_TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError, TimeoutError)
_MAX_CREDIT_ATTEMPTS = 2


@dataclass(frozen=True)
class SubmissionResult:
    challenge_id: str
    challenge_title: str
    points_earned: int
    total_score: int
    completed_challenges: list[str] = field(default_factory=list)
    team_id: int | None = None
    team_score: int | None = None

    @property
    def notification(self) -> str:
        return (
            f'Congratulations! You have completed the challenge "{self.challenge_title}" '
            f"and earned {self.points_earned} points. "
            "Your team leaderboard will be updated accordingly."
        )


@dataclass(frozen=True)
class _ChallengeRef:
    """Plain copy of the fields the credit step needs; survives session rollbacks."""

    id: str
    title: str
    points: int


def normalize_solution(value: str) -> str:
    return value.strip().lower()


def solution_matches(submitted: str, canonical: str) -> bool:
    """Case-insensitive comparison after trimming surrounding whitespace."""
    return normalize_solution(submitted) == normalize_solution(canonical)


async def submit_solution(
    db: AsyncSession,
    user_id: int,
    challenge_id: str,
    solution: str,
    *,
    redis: object | None = None,
    now: datetime | None = None,
) -> SubmissionResult:
    """Verify a submission and credit it at most once.

    Raises:
        SessionExpired, AlreadyCompleted, ChallengeNotFound, IncorrectSolution:
            precondition failures, in that order.
        StoreTransient: the store failed twice in a row.
        StoreInvariantViolation: the user's team row is missing mid-transaction.
    """
    now = now or datetime.now(timezone.utc)

    user = await get_user_by_id(db, user_id, refresh=True)
    if user is None:
        raise UserNotFound()
    require_active_session(user, now)

    if await has_completed(db, user_id, challenge_id):
        raise AlreadyCompleted()

    challenge = await get_challenge(db, challenge_id)
    if challenge is None:
        raise ChallengeNotFound()

    if not solution_matches(solution, challenge.solution):
        await _record_failed_attempt(db, user_id, challenge, solution, now)
        logger.info("solution_rejected", user_id=user_id, challenge_id=challenge.id)
        raise IncorrectSolution()

    ref = _ChallengeRef(id=challenge.id, title=challenge.title, points=challenge.points)
    result = await _credit_with_retry(db, user_id, ref, solution, now)
    logger.info(
        "solution_accepted",
        user_id=user_id,
        challenge_id=ref.id,
        points=result.points_earned,
        total_score=result.total_score,
        team_id=result.team_id,
    )
    await _publish_credit(redis, user_id, result)
    return result


async def _record_failed_attempt(
    db: AsyncSession,
    user_id: int,
    challenge: Challenge,
    solution: str,
    now: datetime,
) -> None:
    db.add(Attempt(
        user_id=user_id,
        challenge_id=challenge.id,
        solution=solution,
        success=False,
        points_earned=0,
        created_at=now,
    ))
    append_event(
        db,
        SecurityEventType.FAILED_SOLUTION,
        user_id,
        f"Failed solution attempt for challenge: {challenge.title}",
        challenge_id=challenge.id,
        now=now,
    )
    try:
        await db.commit()
    except _TRANSIENT_ERRORS as e:
        await db.rollback()
        raise StoreTransient() from e


async def _credit_with_retry(
    db: AsyncSession,
    user_id: int,
    challenge: _ChallengeRef,
    solution: str,
    now: datetime,
) -> SubmissionResult:
    for attempt in range(1, _MAX_CREDIT_ATTEMPTS + 1):
        try:
            return await _credit(db, user_id, challenge, solution, now)
        except StoreTransient:
            if attempt == _MAX_CREDIT_ATTEMPTS:
                logger.error("store_transient_exhausted", user_id=user_id, challenge_id=challenge.id)
                raise
            logger.warning("store_transient_retry", user_id=user_id, challenge_id=challenge.id)
    raise StoreTransient()  # pragma: no cover


async def _credit(
    db: AsyncSession,
    user_id: int,
    challenge: _ChallengeRef,
    solution: str,
    now: datetime,
) -> SubmissionResult:
    """The atomic step. Everything here commits together or not at all."""
    points = challenge.points
    challenge_id = challenge.id
    challenge_title = challenge.title

    async with user_locks.hold(user_id):
        try:
            user = await get_user_for_update(db, user_id)
            if user is None:
                await db.rollback()
                raise UserNotFound()
            team_id = user.team_id

            if await has_completed(db, user_id, challenge_id):
                await db.rollback()
                raise AlreadyCompleted()

            db.add(ChallengeCompletion(
                user_id=user_id,
                challenge_id=challenge_id,
                points=points,
                completed_at=now,
            ))
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(score=User.score + points)
                .execution_options(synchronize_session=False)
            )
            if team_id is not None:
                outcome = await db.execute(
                    update(Team)
                    .where(Team.id == team_id)
                    .values(score=Team.score + points)
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount != 1:
                    await db.rollback()
                    logger.error("team_reference_dangling", user_id=user_id, team_id=team_id)
                    raise StoreInvariantViolation(f"Team {team_id} missing while crediting user {user_id}")

            db.add(Attempt(
                user_id=user_id,
                challenge_id=challenge_id,
                solution=solution,
                success=True,
                points_earned=points,
                created_at=now,
            ))
            append_event(
                db,
                SecurityEventType.SUCCESSFUL_SOLUTION,
                user_id,
                f"Successfully completed challenge: {challenge_title}",
                challenge_id=challenge_id,
                now=now,
            )
            await db.commit()
        except IntegrityError:
            # Completion unique key: a concurrent request from another process won.
            await db.rollback()
            raise AlreadyCompleted() from None
        except _TRANSIENT_ERRORS as e:
            await db.rollback()
            raise StoreTransient() from e

    fresh = await get_user_by_id(db, user_id, refresh=True)
    if fresh is None:
        raise UserNotFound()
    team_score = None
    if team_id is not None:
        result = await db.execute(select(Team.score).where(Team.id == team_id))
        team_score = result.scalar_one_or_none()

    return SubmissionResult(
        challenge_id=challenge_id,
        challenge_title=challenge_title,
        points_earned=points,
        total_score=fresh.score,
        completed_challenges=await get_completed_challenge_ids(db, user_id),
        team_id=team_id,
        team_score=team_score,
    )


async def _publish_credit(redis: object | None, user_id: int, result: SubmissionResult) -> None:
    await publish_broadcast(redis, LEADERBOARD_CHANNEL, {
        "user_id": user_id,
        "team_id": result.team_id,
        "challenge_id": result.challenge_id,
        "points": result.points_earned,
        "total_score": result.total_score,
        "team_score": result.team_score,
    })
    await publish_user_event(redis, user_id, "challenge_completed", {
        "challengeId": result.challenge_id,
        "points": result.points_earned,
        "totalScore": result.total_score,
        "notification": result.notification,
    })
