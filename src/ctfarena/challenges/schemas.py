"""Request/response schemas for the challenge endpoints. Solutions never appear here."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from ctfarena.schemas import CamelModel


class ChallengeSummary(CamelModel):
    id: str
    title: str
    description: str
    difficulty: str
    type: str
    points: int
    hint_count: int = 0


class ChallengeDetail(ChallengeSummary):
    initial_code: str = ""
    completed: bool = False


class ChallengeListData(CamelModel):
    challenges: list[ChallengeSummary]
    total: int


class SubmitRequest(CamelModel):
    challenge_id: str = Field(..., min_length=1, max_length=64)
    solution: str = Field(..., min_length=1, max_length=10_000)


class SubmitData(CamelModel):
    points: int
    total_score: int
    completed_challenges: list[str]
    notification: str


class HintData(CamelModel):
    index: int
    hint: str


class SessionStartData(CamelModel):
    session_expiry: datetime | None
    time_remaining: int
    started: bool


class SessionStatusData(CamelModel):
    session_expiry: datetime | None
    time_remaining: int
    is_expired: bool
    active: bool
    tab_switch_count: int
    disqualified: bool


class CompletedData(CamelModel):
    completed_challenges: list[str]


class ProgressData(CamelModel):
    score: int
    completed_challenges: int
    total_challenges: int
    completion_percentage: int
    session_expiry: datetime | None = None
    session_active: bool
    time_remaining: int | None = None
    tab_switch_count: int
