"""In-process keyed locks.

Spends are serialized per user and overlap checks per coach. Within one
process a ``KeyedLock`` orders the coroutines; across processes the
services also take ``SELECT ... FOR UPDATE`` on the owning row.

Lock order: a flow that needs both takes ``coach:{id}`` before
``user:{id}``.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """A registry of asyncio locks, one per key, dropped when unused."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


# Process-wide registries
user_locks = KeyedLock()
coach_locks = KeyedLock()


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


def coach_key(coach_id: str) -> str:
    return f"coach:{coach_id}"
