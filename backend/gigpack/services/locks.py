"""Per-gig mutual exclusion for save transactions."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator


class GigLockRegistry:
    """Hands out one ``asyncio.Lock`` per gig id.

    Saves of the same gig queue behind each other; saves of different gigs
    never share a lock. Entries are dropped once no task holds or awaits
    them. This only serializes work inside one process; the save transaction
    also takes a row lock on the gig so separate workers serialize as well.
    """

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._waiters: dict[uuid.UUID, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, gig_id: uuid.UUID) -> bool:
        lock = self._locks.get(gig_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, gig_id: uuid.UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(gig_id, asyncio.Lock())
        self._waiters[gig_id] = self._waiters.get(gig_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[gig_id] - 1
            if remaining:
                self._waiters[gig_id] = remaining
            else:
                del self._waiters[gig_id]
                del self._locks[gig_id]


GIG_LOCKS = GigLockRegistry()
