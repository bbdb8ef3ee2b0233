"""
Per-user locks enforcing a single writer per session.

Every turn and every sweep eviction for a user runs inside hold(user_id),
so read-modify-write cycles on one session never interleave.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class SessionLockManager:
    """Keyed asyncio locks, created on demand and dropped when no longer referenced."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for key; waits while another holder is active."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)
