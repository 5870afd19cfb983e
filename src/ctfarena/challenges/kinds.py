"""Closed variants for the challenge catalog."""

from __future__ import annotations

import enum


class ChallengeKind(str, enum.Enum):
    """Selects which client-side simulation renders the challenge."""

    SHELL = "shell"
    PYTHON = "python"
    C = "c"
    NETWORK = "network"
    BINARY = "binary"
    WEB = "web"
    GENERIC = "generic"

    @classmethod
    def resolve(cls, tag: str | None) -> ChallengeKind:
        """Map a stored tag to a kind; unknown or missing tags fall back to GENERIC."""
        if not tag:
            return cls.GENERIC
        try:
            return cls(tag.strip().lower())
        except ValueError:
            return cls.GENERIC


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return _DIFFICULTY_RANK[self]


_DIFFICULTY_RANK = {Difficulty.EASY: 0, Difficulty.MEDIUM: 1, Difficulty.HARD: 2}
