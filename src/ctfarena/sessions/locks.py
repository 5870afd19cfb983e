"""Per-user asyncio locks.

Serializes the read-check-write steps of one user's session counters and
scoring transactions within a process. Cross-process safety comes from the
database (row locks, conditional updates and the completion unique key).
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class UserLocks:
    """Lazily created lock per user id, dropped once no task holds a reference."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        lock = self.get(user_id)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


# Global singleton
user_locks = UserLocks()
