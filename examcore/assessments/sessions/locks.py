"""
Keyed Locks

An ``asyncio.Lock`` per key, created on first use and dropped once nobody
holds or waits for it. Session mutations lock on the session id; resume
locks on the (user id, definition id) pair.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, Tuple


class KeyedLockRegistry:
    """Registry of per-key asyncio locks with reference counting."""

    def __init__(self):
        self._locks: Dict[Hashable, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        """
        Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Any hashable key, such as a session id
        """
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def is_locked(self, key: Hashable) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        return len(self._locks)
