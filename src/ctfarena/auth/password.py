"""
Argon2id password hashing and registration password rules.

Participants sign in with email + team name, so a participant's hash is only
checked at registration time; admins sign in with email + password.
"""

from __future__ import annotations

from collections.abc import Callable

import argon2

from ctfarena.config import get_settings

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    type=argon2.Type.ID,
)

# (check, message) pairs applied after the length bounds, in order
_CHARACTER_RULES: list[tuple[Callable[[str], bool], str]] = [
    (lambda p: any(c.isupper() for c in p), "Password must contain at least one uppercase letter"),
    (lambda p: any(c.islower() for c in p), "Password must contain at least one lowercase letter"),
    (lambda p: any(c.isdigit() for c in p), "Password must contain at least one digit"),
]


class PasswordStrengthError(ValueError):
    """Registration password rejected; ``problems`` lists every failed rule."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__(problems[0])


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """True on match. Mismatches and unreadable hashes both return False."""
    try:
        return _hasher.verify(password_hash, password)
    except (argon2.exceptions.VerifyMismatchError, argon2.exceptions.InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """Whether a stored hash was made with weaker parameters than the current hasher."""
    try:
        return _hasher.check_needs_rehash(password_hash)
    except argon2.exceptions.InvalidHashError:
        return True


def password_problems(password: str) -> list[str]:
    """All rule violations for ``password`` (empty when acceptable)."""
    settings = get_settings()
    if not password or not password.strip():
        return ["Password cannot be empty"]
    problems = []
    if len(password) < settings.password_min_length:
        problems.append(f"Password must be at least {settings.password_min_length} characters")
    if len(password) > settings.password_max_length:
        problems.append(f"Password must not exceed {settings.password_max_length} characters")
    problems.extend(message for check, message in _CHARACTER_RULES if not check(password))
    return problems


def validate_password_strength(password: str) -> None:
    """Raise PasswordStrengthError carrying every failed rule; the message is the first one."""
    problems = password_problems(password)
    if problems:
        raise PasswordStrengthError(problems)
