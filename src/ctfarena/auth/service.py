"""
Identity store: user and team records.

Handles registration (team create/join), the lookups login needs, admin
credential checks and the bootstrap admin account.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Literal

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ctfarena.auth.password import (
    hash_password,
    needs_rehash,
    validate_password_strength,
    verify_password,
)
from ctfarena.db.models import Team, User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

TEAM_ROLE_LEADER = "leader"
TEAM_ROLE_MEMBER = "member"


class RegistrationError(ValueError):
    """Registration rejected: duplicate email, unknown or taken team name, weak password."""


def normalize_team_name(name: str) -> str:
    return name.strip().lower()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int, *, refresh: bool = False) -> User | None:
    """Fetch a user by ID.

    ``refresh`` re-reads the row even if the user is already in the session's
    identity map (sessions are created with ``expire_on_commit=False``).
    """
    query = select(User).where(User.id == user_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_user_for_update(db: AsyncSession, user_id: int) -> User | None:
    """Fetch and row-lock a user for a read-modify-write (``FOR UPDATE`` on PostgreSQL)."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_team_by_name(db: AsyncSession, team_name: str) -> Team | None:
    """Fetch a team by name (case-insensitive)."""
    result = await db.execute(select(Team).where(Team.name_normalized == normalize_team_name(team_name)))
    return result.scalar_one_or_none()


async def get_team_by_id(db: AsyncSession, team_id: int) -> Team | None:
    result = await db.execute(select(Team).where(Team.id == team_id))
    return result.scalar_one_or_none()


async def lookup_user_by_email_and_team(db: AsyncSession, email: str, team_name: str) -> User | None:
    """Participant login lookup: email and team name must both match (case-insensitive)."""
    result = await db.execute(
        select(User)
        .join(Team, User.team_id == Team.id)
        .where(
            func.lower(User.email) == email.strip().lower(),
            Team.name_normalized == normalize_team_name(team_name),
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    team_name: str,
    registration_type: Literal["create", "join"],
) -> User:
    """
    Register a participant and create or join a team, in one transaction.

    Raises:
        RegistrationError: If the email is taken, the team name is taken (create)
            or unknown (join), or the password is weak.
    """
    try:
        validate_password_strength(password)
    except ValueError as e:
        raise RegistrationError(str(e)) from e

    if await get_user_by_email(db, email) is not None:
        msg = "Email already in use"
        raise RegistrationError(msg)

    now = datetime.now(timezone.utc)
    team = await get_team_by_name(db, team_name)
    if registration_type == "create":
        if team is not None:
            msg = "Team name already exists"
            raise RegistrationError(msg)
        team = Team(
            name=team_name.strip(),
            name_normalized=normalize_team_name(team_name),
            score=0,
            created_at=now,
        )
        db.add(team)
        role = TEAM_ROLE_LEADER
    else:
        if team is None:
            msg = "Team not found"
            raise RegistrationError(msg)
        role = TEAM_ROLE_MEMBER

    user = User(
        username=username.strip(),
        email=email.strip().lower(),
        password_hash=hash_password(password),
        team=team,
        team_role=role,
        is_admin=False,
        score=0,
        tab_switch_count=0,
        disqualified=False,
        created_at=now,
    )
    db.add(user)
    try:
        await db.flush()
        if role == TEAM_ROLE_LEADER:
            team.creator_id = user.id
        await db.commit()
    except IntegrityError as e:
        # Lost a race on the email or team-name unique key.
        await db.rollback()
        msg = "Email or team name already in use"
        raise RegistrationError(msg) from e

    logger.info("user_registered", user_id=user.id, team_id=team.id, role=role)
    return user


# ---------------------------------------------------------------------------
# Admin accounts
# ---------------------------------------------------------------------------


async def verify_admin_credentials(db: AsyncSession, email: str, password: str) -> User | None:
    """Return the admin user if the email belongs to an admin and the password verifies."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_admin or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        return None
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        await db.commit()
        logger.info("admin_password_rehashed", user_id=user.id)
    return user


async def ensure_admin_account(db: AsyncSession, email: str, password: str, username: str = "admin") -> User | None:
    """Create (or promote) the bootstrap admin. Idempotent; no-op when email is empty."""
    if not email or not password:
        return None

    user = await get_user_by_email(db, email)
    if user is None:
        user = User(
            username=username,
            email=email.strip().lower(),
            password_hash=hash_password(password),
            is_admin=True,
            created_at=datetime.now(timezone.utc),
        )
        db.add(user)
        logger.info("admin_account_created", email=user.email)
    elif not user.is_admin or not user.password_hash:
        user.is_admin = True
        user.password_hash = user.password_hash or hash_password(password)
        logger.info("admin_account_promoted", user_id=user.id)
    await db.commit()
    return user
