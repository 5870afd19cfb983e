"""Tab-switch monitor.

Counts focus-loss events reported by the browser during an active session.
Reaching the limit disqualifies the user and closes the window immediately
(expiry forced to "now"). Later calls are no-ops that report the terminal
state.

Increments are serialized per user in-process by ``user_locks`` and guarded
across processes by a compare-and-swap update on the observed count, so the
count never passes the limit and disqualification fires exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.service import get_user_by_id, get_user_for_update
from ctfarena.config import get_settings
from ctfarena.db.models import User
from ctfarena.errors import StoreTransient, UserNotFound
from ctfarena.security.event_log import SecurityEventType, append_event
from ctfarena.sessions.clock import is_session_active
from ctfarena.sessions.locks import user_locks
from ctfarena.ws.publish import publish_user_event

logger = structlog.get_logger()

_CAS_ATTEMPTS = 5


@dataclass(frozen=True)
class TabSwitchResult:
    tab_switch_count: int
    max_tab_switches: int
    disqualified: bool
    session_terminated: bool
    recorded: bool


def _snapshot(user: User, max_switches: int, now: datetime, *, recorded: bool) -> TabSwitchResult:
    return TabSwitchResult(
        tab_switch_count=user.tab_switch_count,
        max_tab_switches=max_switches,
        disqualified=user.disqualified,
        session_terminated=not user.is_admin and not is_session_active(user, now),
        recorded=recorded,
    )


async def record_tab_switch(
    db: AsyncSession,
    user_id: int,
    *,
    redis: object | None = None,
    now: datetime | None = None,
) -> TabSwitchResult:
    """Record one tab switch for ``user_id``.

    Admins are exempt. Outside an active session nothing is counted.
    """
    now = now or datetime.now(timezone.utc)
    max_switches = get_settings().max_tab_switches

    async with user_locks.hold(user_id):
        for _ in range(_CAS_ATTEMPTS):
            user = await get_user_for_update(db, user_id)
            if user is None:
                raise UserNotFound()

            if user.is_admin or not is_session_active(user, now):
                result = _snapshot(user, max_switches, now, recorded=False)
                await db.commit()
                return result

            observed = user.tab_switch_count
            new_count = observed + 1
            disqualify = new_count >= max_switches
            values: dict[str, object] = {"tab_switch_count": new_count}
            if disqualify:
                values.update(disqualified=True, session_expiry=now)

            outcome = await db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    User.tab_switch_count == observed,
                    User.disqualified.is_(False),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount != 1:
                # Another process moved the counter first; re-read and try again.
                await db.rollback()
                continue

            if disqualify:
                append_event(
                    db,
                    SecurityEventType.EXCESSIVE_TAB_SWITCHING,
                    user_id,
                    f"User exceeded maximum tab switches ({new_count}/{max_switches})",
                    now=now,
                )
            await db.commit()
            break
        else:
            raise StoreTransient("Tab switch could not be recorded, please retry")

    user = await get_user_by_id(db, user_id, refresh=True)
    if user is None:
        raise UserNotFound()
    result = _snapshot(user, max_switches, now, recorded=True)

    if disqualify:
        logger.warning("tab_switch_disqualified", user_id=user_id, count=new_count)
        await publish_user_event(redis, user_id, "session_terminated", {
            "reason": "excessive_tab_switching",
            "tabSwitchCount": new_count,
            "maxTabSwitches": max_switches,
        })
    else:
        logger.info("tab_switch_recorded", user_id=user_id, count=new_count)
    return result
