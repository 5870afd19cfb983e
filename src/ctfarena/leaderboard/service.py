"""Leaderboard service: ranked user and team views derived from current rows.

Nothing here is persisted. Every read recomputes the ordering from the
``users``/``teams`` tables and the completion ledger, so a view always
reflects the last committed scoring transaction. Admin accounts are left out
of every view and of rank totals.
"""

from __future__ import annotations

import logging

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.service import TEAM_ROLE_LEADER, get_team_by_id, get_user_by_id
from ctfarena.challenges.service import require_challenge
from ctfarena.db.models import ChallengeCompletion, Team, User
from ctfarena.errors import TeamNotFound, UserNotFound
from ctfarena.leaderboard.ranking import (
    average_score,
    calculate_percentile,
    rank_entries,
    team_sort_key,
    user_sort_key,
)

logger = logging.getLogger(__name__)

_participant = User.is_admin.is_(False)


async def _completion_counts(db: AsyncSession, user_ids: list[int] | None = None) -> dict[int, int]:
    query = select(ChallengeCompletion.user_id, func.count(ChallengeCompletion.id).label("cnt")).group_by(
        ChallengeCompletion.user_id
    )
    if user_ids is not None:
        if not user_ids:
            return {}
        query = query.where(ChallengeCompletion.user_id.in_(user_ids))
    result = await db.execute(query)
    return {row.user_id: row.cnt for row in result}


async def _team_union_counts(db: AsyncSession) -> dict[int, int]:
    """Distinct challenges solved by any member, per team."""
    result = await db.execute(
        select(User.team_id, func.count(distinct(ChallengeCompletion.challenge_id)).label("cnt"))
        .join(User, User.id == ChallengeCompletion.user_id)
        .where(User.team_id.is_not(None))
        .group_by(User.team_id)
    )
    return {row.team_id: row.cnt for row in result}


async def count_participants(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(User.id)).where(_participant))
    return int(result.scalar_one())


async def get_user_leaderboard(db: AsyncSession, limit: int = 50, page: int = 1) -> dict:
    """One page of the user leaderboard.

    Returns ``entries`` ({rank, user_id, username, team_name, score,
    completed_count}) plus ``total``, ``page``, ``limit``, ``pages`` and
    ``has_more``.
    """
    page = max(page, 1)
    limit = max(limit, 1)
    result = await db.execute(
        select(User.id, User.username, User.score, Team.name.label("team_name"))
        .outerjoin(Team, User.team_id == Team.id)
        .where(_participant)
    )
    rows = [
        {"user_id": r.id, "username": r.username, "score": r.score, "team_name": r.team_name}
        for r in result
    ]
    total = len(rows)
    ranked = rank_entries(rows, key=user_sort_key)

    start = (page - 1) * limit
    page_rows = ranked[start:start + limit]
    counts = await _completion_counts(db, [r["user_id"] for r in page_rows])
    for entry in page_rows:
        entry["completed_count"] = counts.get(entry["user_id"], 0)

    pages = (total + limit - 1) // limit
    return {
        "entries": page_rows,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": pages,
        "has_more": page < pages,
    }


async def get_team_leaderboard(db: AsyncSession) -> list[dict]:
    """All teams ranked by aggregate score.

    ``completed_count`` is the union of member completions: a challenge solved
    by several members counts once.
    """
    teams = (await db.execute(select(Team.id, Team.name, Team.score))).all()
    members = await db.execute(
        select(User.team_id, func.count(User.id).label("cnt"))
        .where(User.team_id.is_not(None), _participant)
        .group_by(User.team_id)
    )
    member_counts = {row.team_id: row.cnt for row in members}
    union_counts = await _team_union_counts(db)

    rows = []
    for team in teams:
        member_count = member_counts.get(team.id, 0)
        rows.append({
            "team_id": team.id,
            "team_name": team.name,
            "score": team.score,
            "member_count": member_count,
            "completed_count": union_counts.get(team.id, 0),
            "avg_score": average_score(team.score, member_count),
        })
    return rank_entries(rows, key=team_sort_key)


async def get_team_details(db: AsyncSession, team_id: int) -> dict:
    """Team summary with members, leader first then in join order."""
    team = await get_team_by_id(db, team_id)
    if team is None:
        raise TeamNotFound()

    result = await db.execute(
        select(User)
        .where(User.team_id == team_id, _participant)
        .order_by(User.id)
        .execution_options(populate_existing=True)
    )
    users = list(result.scalars().all())
    users.sort(key=lambda u: 0 if u.team_role == TEAM_ROLE_LEADER else 1)
    counts = await _completion_counts(db, [u.id for u in users])

    union = await db.execute(
        select(func.count(distinct(ChallengeCompletion.challenge_id)))
        .join(User, User.id == ChallengeCompletion.user_id)
        .where(User.team_id == team_id)
    )
    return {
        "team_id": team.id,
        "team_name": team.name,
        "score": team.score,
        "member_count": len(users),
        "completed_count": int(union.scalar_one()),
        "members": [
            {
                "user_id": u.id,
                "username": u.username,
                "role": u.team_role,
                "score": u.score,
                "completed_count": counts.get(u.id, 0),
            }
            for u in users
        ],
    }


async def get_challenge_leaderboard(db: AsyncSession, challenge_id: str) -> dict:
    """Solvers of one challenge in completion order."""
    challenge = await require_challenge(db, challenge_id)
    result = await db.execute(
        select(User.username, Team.name.label("team_name"), ChallengeCompletion.points, ChallengeCompletion.completed_at)
        .join(User, User.id == ChallengeCompletion.user_id)
        .outerjoin(Team, User.team_id == Team.id)
        .where(ChallengeCompletion.challenge_id == challenge_id, _participant)
        .order_by(ChallengeCompletion.completed_at, ChallengeCompletion.id)
    )
    entries = [
        {
            "rank": idx + 1,
            "username": row.username,
            "team_name": row.team_name,
            "points": row.points,
            "completed_at": row.completed_at,
        }
        for idx, row in enumerate(result)
    ]
    return {"challenge_id": challenge.id, "challenge_title": challenge.title, "entries": entries}


async def get_user_rank(db: AsyncSession, user_id: int) -> dict:
    """Competition rank: 1 + number of participants with a strictly greater score.

    Admins are not ranked and get rank 0, percentile 0.
    """
    user = await get_user_by_id(db, user_id, refresh=True)
    if user is None:
        raise UserNotFound()

    total = await count_participants(db)
    completed = (await _completion_counts(db, [user.id])).get(user.id, 0)
    if user.is_admin:
        return {
            "username": user.username,
            "score": user.score,
            "rank": 0,
            "total_users": total,
            "percentile": 0,
            "completed_challenges": completed,
        }

    higher = await db.execute(select(func.count(User.id)).where(_participant, User.score > user.score))
    rank = int(higher.scalar_one()) + 1
    return {
        "username": user.username,
        "score": user.score,
        "rank": rank,
        "total_users": total,
        "percentile": calculate_percentile(rank, total),
        "completed_challenges": completed,
    }


async def find_team_score_drift(db: AsyncSession) -> list[dict]:
    """Teams whose stored aggregate differs from the sum of their members' scores."""
    member_sums = (
        select(User.team_id, func.coalesce(func.sum(User.score), 0).label("member_sum"))
        .where(User.team_id.is_not(None))
        .group_by(User.team_id)
        .subquery()
    )
    result = await db.execute(
        select(Team.id, Team.name, Team.score, func.coalesce(member_sums.c.member_sum, 0).label("member_sum"))
        .outerjoin(member_sums, member_sums.c.team_id == Team.id)
    )
    drift = [
        {"team_id": r.id, "team_name": r.name, "score": r.score, "member_sum": int(r.member_sum)}
        for r in result
        if r.score != int(r.member_sum)
    ]
    if drift:
        logger.error("Team score drift detected for %d team(s)", len(drift))
    return drift
