"""Tests for the tab-switch monitor."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ctfarena.auth.service import get_user_by_id
from ctfarena.security.event_log import SecurityEventType, get_user_events
from ctfarena.sessions.monitor import record_tab_switch
from tests.conftest import make_active_user, make_admin, make_user

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


async def test_counts_up_to_threshold(db_session: AsyncSession):
    user = await make_active_user(db_session, "alice", "Red Team", now=NOW)

    first = await record_tab_switch(db_session, user.id, now=NOW + timedelta(minutes=1))
    assert (first.tab_switch_count, first.disqualified, first.recorded) == (1, False, True)

    second = await record_tab_switch(db_session, user.id, now=NOW + timedelta(minutes=2))
    assert (second.tab_switch_count, second.disqualified) == (2, False)
    assert second.session_terminated is False


async def test_third_switch_disqualifies_and_expires(db_session: AsyncSession):
    user = await make_active_user(db_session, "alice", "Red Team", now=NOW)
    for i in range(2):
        await record_tab_switch(db_session, user.id, now=NOW + timedelta(minutes=i))

    moment = NOW + timedelta(minutes=5)
    result = await record_tab_switch(db_session, user.id, now=moment)
    assert result.tab_switch_count == 3
    assert result.disqualified is True
    assert result.session_terminated is True

    fresh = await get_user_by_id(db_session, user.id, refresh=True)
    assert fresh.session_expiry == moment

    events = await get_user_events(db_session, user.id, SecurityEventType.EXCESSIVE_TAB_SWITCHING)
    assert [e.detail for e in events] == ["User exceeded maximum tab switches (3/3)"]


async def test_calls_after_disqualification_are_noops(db_session: AsyncSession):
    user = await make_active_user(db_session, "alice", "Red Team", now=NOW)
    for i in range(3):
        await record_tab_switch(db_session, user.id, now=NOW + timedelta(minutes=i))

    for i in range(3):
        result = await record_tab_switch(db_session, user.id, now=NOW + timedelta(minutes=10 + i))
        assert result.recorded is False
        assert result.tab_switch_count == 3
        assert result.disqualified is True

    events = await get_user_events(db_session, user.id, SecurityEventType.EXCESSIVE_TAB_SWITCHING)
    assert len(events) == 1


async def test_admin_is_exempt(db_session: AsyncSession):
    admin = await make_admin(db_session)
    result = await record_tab_switch(db_session, admin.id, now=NOW)
    assert result.recorded is False
    assert result.tab_switch_count == 0
    assert result.disqualified is False


async def test_no_count_outside_active_session(db_session: AsyncSession):
    user = await make_user(db_session, "alice", "Red Team")
    result = await record_tab_switch(db_session, user.id, now=NOW)
    assert result.recorded is False
    assert result.tab_switch_count == 0


async def test_disqualification_publishes_session_event(db_session: AsyncSession):
    user = await make_active_user(db_session, "alice", "Red Team", now=NOW)
    redis = AsyncMock()
    for i in range(3):
        await record_tab_switch(db_session, user.id, redis=redis, now=NOW + timedelta(seconds=i))

    redis.publish.assert_awaited_once()
    channel, payload = redis.publish.await_args.args
    assert channel == f"ws:user:{user.id}"
    assert '"session_terminated"' in payload


async def test_concurrent_switches_never_pass_limit(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
):
    user = await make_active_user(db_session, "alice", "Red Team", now=NOW)

    async def one_switch():
        async with session_factory() as session:
            return await record_tab_switch(session, user.id, now=NOW + timedelta(minutes=1))

    results = await asyncio.gather(*(one_switch() for _ in range(6)))
    assert sum(1 for r in results if r.recorded) == 3
    assert max(r.tab_switch_count for r in results) == 3

    async with session_factory() as session:
        fresh = await get_user_by_id(session, user.id)
        assert fresh.tab_switch_count == 3
        assert fresh.disqualified is True
        events = await get_user_events(session, user.id, SecurityEventType.EXCESSIVE_TAB_SWITCHING)
        assert len(events) == 1
