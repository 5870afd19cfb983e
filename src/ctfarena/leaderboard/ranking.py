"""Deterministic ranking helpers.

Users are ordered by score DESC, then username ASC. Teams are ordered by
score DESC, then name ASC. Ranks are 1-based positions in that total order,
computed at read time.
"""

from __future__ import annotations

import math
from typing import Any


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negatives (12.5 -> 13)."""
    return int(math.floor(value + 0.5))


def calculate_percentile(rank: int, total: int) -> int:
    """Percentile of a 1-based rank among ``total`` users.

    Rank 1 of 5 -> 100, rank 5 of 5 -> 0. A lone user is at 100.
    """
    if total <= 1:
        return 100
    if rank <= 0:
        return 0
    return round_half_up(100 * (total - rank) / (total - 1))


def completion_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(completed / total * 100)


def average_score(score: int, member_count: int) -> int:
    if member_count <= 0:
        return 0
    return round_half_up(score / member_count)


def user_sort_key(entry: dict[str, Any]) -> tuple[int, str]:
    return (-entry.get("score", 0), entry.get("username", ""))


def team_sort_key(entry: dict[str, Any]) -> tuple[int, str]:
    return (-entry.get("score", 0), entry.get("team_name", ""))


def rank_entries(
    entries: list[dict[str, Any]],
    key: Any = user_sort_key,  # noqa: ANN401
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Sort ``entries`` by ``key`` and stamp a 1-based ``rank`` starting after ``offset``."""
    ranked = sorted(entries, key=key)
    for idx, entry in enumerate(ranked):
        entry["rank"] = offset + idx + 1
    return ranked
