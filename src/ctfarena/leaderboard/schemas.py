"""Leaderboard response schemas."""

from __future__ import annotations

from datetime import datetime

from ctfarena.schemas import CamelModel


class UserLeaderboardEntry(CamelModel):
    rank: int
    user_id: int
    username: str
    team_name: str | None = None
    score: int
    completed_count: int


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    pages: int
    has_more: bool


class UserLeaderboardData(CamelModel):
    leaderboard: list[UserLeaderboardEntry]
    pagination: Pagination


class TeamLeaderboardEntry(CamelModel):
    rank: int
    team_id: int
    team_name: str
    score: int
    member_count: int
    completed_count: int
    avg_score: int


class TeamLeaderboardData(CamelModel):
    leaderboard: list[TeamLeaderboardEntry]


class TeamMember(CamelModel):
    user_id: int
    username: str
    role: str | None = None
    score: int
    completed_count: int


class TeamDetailData(CamelModel):
    team_id: int
    team_name: str
    score: int
    member_count: int
    completed_count: int
    members: list[TeamMember]


class ChallengeSolver(CamelModel):
    rank: int
    username: str
    team_name: str | None = None
    points: int
    completed_at: datetime


class ChallengeLeaderboardData(CamelModel):
    challenge_id: str
    challenge_title: str
    leaderboard: list[ChallengeSolver]


class UserRankData(CamelModel):
    username: str
    score: int
    rank: int
    total_users: int
    percentile: int
    completed_challenges: int
