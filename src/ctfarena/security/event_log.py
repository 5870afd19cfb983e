"""Security event log: append-only record of suspicious or notable actions."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.db.models import SecurityLog


class SecurityEventType(str, enum.Enum):
    SESSION_STARTED = "SESSION_STARTED"
    FAILED_SOLUTION = "FAILED_SOLUTION"
    SUCCESSFUL_SOLUTION = "SUCCESSFUL_SOLUTION"
    HINT_REQUESTED = "HINT_REQUESTED"
    EXCESSIVE_TAB_SWITCHING = "EXCESSIVE_TAB_SWITCHING"


def append_event(
    db: AsyncSession,
    event_type: SecurityEventType,
    user_id: int,
    detail: str,
    challenge_id: str | None = None,
    now: datetime | None = None,
) -> SecurityLog:
    """Stage a log entry in the caller's transaction.

    Pure insert: no dedup and no size cap. The entry becomes durable when the
    caller commits, so it shares the fate of the state change it describes.
    """
    entry = SecurityLog(
        type=event_type.value,
        user_id=user_id,
        challenge_id=challenge_id,
        detail=detail,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(entry)
    return entry


def format_log_entry(entry: SecurityLog) -> str:
    """Render ``[YYYY-MM-DD HH:MM:SS] TYPE: detail``."""
    timestamp = entry.created_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    return f"[{timestamp}] {entry.type}: {entry.detail}"


async def get_recent_logs(db: AsyncSession, limit: int = 100) -> list[SecurityLog]:
    """Most recent entries, newest first."""
    result = await db.execute(
        select(SecurityLog)
        .order_by(SecurityLog.created_at.desc(), SecurityLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_user_events(
    db: AsyncSession,
    user_id: int,
    event_type: SecurityEventType | None = None,
) -> list[SecurityLog]:
    """All entries for one user in insertion order."""
    query = select(SecurityLog).where(SecurityLog.user_id == user_id)
    if event_type is not None:
        query = query.where(SecurityLog.type == event_type.value)
    result = await db.execute(query.order_by(SecurityLog.id.asc()))
    return list(result.scalars().all())
