"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import EmailStr, Field, field_validator

from ctfarena.schemas import CamelModel


class RegisterRequest(CamelModel):
    """Participant registration. ``registrationType`` selects create or join."""

    username: str = Field(..., min_length=3, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    team_name: str = Field(..., min_length=1, max_length=64)
    registration_type: Literal["create", "join"] = "create"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()

    @field_validator("username", "team_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "must not be blank"
            raise ValueError(msg)
        return v


class LoginRequest(CamelModel):
    """Participant login: email plus the team the user belongs to."""

    email: EmailStr
    team_name: str = Field(..., min_length=1, max_length=64)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class AdminLoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(CamelModel):
    """User profile as returned to the browser client."""

    id: int
    username: str
    email: str
    team_id: int | None = None
    team_name: str | None = None
    role: str | None = None
    is_admin: bool = False
    disqualified: bool = False
    score: int = 0
    completed_challenges: list[str] = Field(default_factory=list)
    session_expiry: datetime | None = None
    time_remaining: int = 0
    tab_switch_count: int = 0


class TokenData(CamelModel):
    token: str
    user: UserResponse


class TabSwitchResponse(CamelModel):
    tab_switch_count: int
    max_tab_switches: int
    disqualified: bool
    is_session_terminated: bool
