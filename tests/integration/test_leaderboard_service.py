"""Leaderboard views derived from scoring writes."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.challenges.scoring import submit_solution
from ctfarena.db.models import Challenge
from ctfarena.errors import TeamNotFound
from ctfarena.leaderboard.service import (
    find_team_score_drift,
    get_challenge_leaderboard,
    get_team_details,
    get_team_leaderboard,
    get_user_leaderboard,
    get_user_rank,
)
from tests.conftest import make_active_user, make_admin, make_user

pytestmark = pytest.mark.asyncio

ANSWERS = {
    "Basic Shell Challenge": "ls",
    "Packet Capture Analysis": "hunter2",
    "Binary Diff": "0x4f2",
    "Login Bypass": "admin' --",
}


async def _solve(db: AsyncSession, user_id: int, challenges: dict[str, Challenge], *titles: str) -> None:
    for title in titles:
        await submit_solution(db, user_id, challenges[title].id, ANSWERS[title])


@pytest_asyncio.fixture
async def standings(db_session: AsyncSession, challenges: dict[str, Challenge]) -> dict:
    """Red: alice 35, bob 10. Blue: carol 40, dave 0. Admin exists but is never ranked."""
    alice = await make_active_user(db_session, "alice", "Red")
    bob = await make_active_user(db_session, "bob", "Red", join=True)
    carol = await make_active_user(db_session, "carol", "Blue")
    dave = await make_user(db_session, "dave", "Blue", join=True)
    await make_admin(db_session)

    await _solve(db_session, alice.id, challenges, "Basic Shell Challenge", "Packet Capture Analysis")
    await _solve(db_session, bob.id, challenges, "Basic Shell Challenge")
    await _solve(db_session, carol.id, challenges, "Login Bypass")
    return {"alice": alice, "bob": bob, "carol": carol, "dave": dave}


async def test_user_leaderboard_order(db_session: AsyncSession, standings: dict):
    board = await get_user_leaderboard(db_session, limit=10, page=1)
    rows = [(e["rank"], e["username"], e["score"], e["completed_count"]) for e in board["entries"]]
    assert rows == [(1, "carol", 40, 1), (2, "alice", 35, 2), (3, "bob", 10, 1), (4, "dave", 0, 0)]
    assert board["total"] == 4
    assert board["has_more"] is False

    for upper, lower in zip(board["entries"], board["entries"][1:]):
        assert upper["score"] >= lower["score"]
        if upper["score"] == lower["score"]:
            assert upper["username"] <= lower["username"]


async def test_user_leaderboard_pagination(db_session: AsyncSession, standings: dict):
    page2 = await get_user_leaderboard(db_session, limit=3, page=2)
    assert [e["username"] for e in page2["entries"]] == ["dave"]
    assert page2["entries"][0]["rank"] == 4
    assert page2["pages"] == 2
    assert page2["has_more"] is False

    page1 = await get_user_leaderboard(db_session, limit=3, page=1)
    assert page1["has_more"] is True


async def test_team_leaderboard_uses_union_of_completions(db_session: AsyncSession, standings: dict):
    teams = await get_team_leaderboard(db_session)
    assert [(t["rank"], t["team_name"], t["score"]) for t in teams] == [(1, "Red", 45), (2, "Blue", 40)]
    red = teams[0]
    # alice and bob both solved the shell challenge: it counts once.
    assert red["completed_count"] == 2
    assert red["member_count"] == 2
    assert red["avg_score"] == 23


async def test_team_details(db_session: AsyncSession, standings: dict):
    details = await get_team_details(db_session, standings["carol"].team_id)
    assert details["team_name"] == "Blue"
    assert [(m["username"], m["role"]) for m in details["members"]] == [("carol", "leader"), ("dave", "member")]
    assert details["completed_count"] == 1


async def test_unknown_team(db_session: AsyncSession):
    with pytest.raises(TeamNotFound):
        await get_team_details(db_session, 12345)


async def test_user_rank(db_session: AsyncSession, standings: dict):
    top = await get_user_rank(db_session, standings["carol"].id)
    assert (top["rank"], top["total_users"], top["percentile"]) == (1, 4, 100)

    bottom = await get_user_rank(db_session, standings["dave"].id)
    assert (bottom["rank"], bottom["percentile"]) == (4, 0)

    middle = await get_user_rank(db_session, standings["alice"].id)
    assert (middle["rank"], middle["percentile"], middle["completed_challenges"]) == (2, 67, 2)


async def test_tied_scores_share_rank(db_session: AsyncSession, challenges: dict[str, Challenge]):
    a = await make_active_user(db_session, "amy", "One")
    b = await make_active_user(db_session, "ben", "Two")
    await _solve(db_session, a.id, challenges, "Basic Shell Challenge")
    await _solve(db_session, b.id, challenges, "Basic Shell Challenge")
    assert (await get_user_rank(db_session, a.id))["rank"] == 1
    assert (await get_user_rank(db_session, b.id))["rank"] == 1


async def test_challenge_leaderboard_in_completion_order(
    db_session: AsyncSession, standings: dict, challenges: dict[str, Challenge]
):
    board = await get_challenge_leaderboard(db_session, challenges["Basic Shell Challenge"].id)
    assert [(e["rank"], e["username"]) for e in board["entries"]] == [(1, "alice"), (2, "bob")]


async def test_no_team_score_drift_after_scoring(db_session: AsyncSession, standings: dict):
    assert await find_team_score_drift(db_session) == []
