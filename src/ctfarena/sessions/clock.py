"""Challenge session clock.

A session is the fixed-length window in which a participant may solve
challenges. It is derived from three columns on the user row:
``session_expiry``, ``tab_switch_count`` and ``disqualified``. A session is
active iff ``now < session_expiry``, the tab-switch count is below the limit,
and the user is not disqualified.

Starting a session while one is active keeps the existing expiry, so logging
in again never extends the clock. Once the window has passed, the next start
opens a fresh one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.service import get_user_for_update
from ctfarena.config import get_settings
from ctfarena.db.models import User
from ctfarena.errors import SessionExpired, UserNotFound
from ctfarena.security.event_log import SecurityEventType, append_event
from ctfarena.sessions.locks import user_locks

logger = structlog.get_logger()


@dataclass(frozen=True)
class SessionStart:
    expiry: datetime | None
    started: bool


@dataclass(frozen=True)
class SessionStatus:
    expiry: datetime | None
    remaining_seconds: int
    expired: bool
    active: bool
    tab_switch_count: int
    disqualified: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def session_duration() -> timedelta:
    return timedelta(minutes=get_settings().session_duration_minutes)


def is_expired(user: User, now: datetime | None = None) -> bool:
    """True if the session was never started or its expiry is not in the future."""
    if user.session_expiry is None:
        return True
    return (now or _utcnow()) >= user.session_expiry


def remaining_seconds(user: User, now: datetime | None = None) -> int:
    """Whole seconds left in the window, never negative."""
    if user.session_expiry is None:
        return 0
    delta = (user.session_expiry - (now or _utcnow())).total_seconds()
    return max(0, int(delta))


def is_session_active(user: User, now: datetime | None = None) -> bool:
    return (
        not is_expired(user, now)
        and user.tab_switch_count < get_settings().max_tab_switches
        and not user.disqualified
    )


def session_status(user: User, now: datetime | None = None) -> SessionStatus:
    now = now or _utcnow()
    return SessionStatus(
        expiry=user.session_expiry,
        remaining_seconds=remaining_seconds(user, now),
        expired=is_expired(user, now),
        active=is_session_active(user, now),
        tab_switch_count=user.tab_switch_count,
        disqualified=user.disqualified,
    )


def require_active_session(user: User, now: datetime | None = None) -> None:
    """Raise SessionExpired with the reason the window is closed."""
    if is_session_active(user, now):
        return
    if user.disqualified or user.tab_switch_count >= get_settings().max_tab_switches:
        raise SessionExpired("Session terminated due to excessive tab switching")
    if user.session_expiry is None:
        raise SessionExpired("Challenge session not started")
    raise SessionExpired("Challenge session expired")


async def start_session(db: AsyncSession, user_id: int, now: datetime | None = None) -> SessionStart:
    """Open a fresh window unless one is active.

    A fresh start resets the tab-switch count and appends SESSION_STARTED.
    Admins have no challenge clock and disqualified users cannot reopen one;
    both get their current expiry back unchanged.
    """
    now = now or _utcnow()
    async with user_locks.hold(user_id):
        user = await get_user_for_update(db, user_id)
        if user is None:
            raise UserNotFound()

        if user.is_admin or user.disqualified or is_session_active(user, now):
            # Nothing to change; end the transaction to release the row lock.
            await db.commit()
            return SessionStart(expiry=user.session_expiry, started=False)

        expiry = now + session_duration()
        user.session_expiry = expiry
        user.session_started_at = now
        user.tab_switch_count = 0
        append_event(db, SecurityEventType.SESSION_STARTED, user_id, "Challenge session initialized", now=now)
        await db.commit()

    logger.info("session_started", user_id=user_id, expiry=expiry.isoformat())
    return SessionStart(expiry=expiry, started=True)
