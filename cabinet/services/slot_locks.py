"""In-process locks serializing check-then-write on bookable slots."""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import date, time

SlotKey = tuple[int, date, time]


class SlotLockRegistry:
    """
    One ``asyncio.Lock`` per (therapist, date, time), created on demand.

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the registry only grows with the number of slots in flight.
    Keys are always acquired in sorted order to keep overlapping batches
    from deadlocking.
    """

    def __init__(self) -> None:
        self._locks: dict[SlotKey, asyncio.Lock] = {}
        self._users: dict[SlotKey, int] = {}

    def _checkout(self, key: SlotKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: SlotKey) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[SlotKey]) -> AsyncIterator[None]:
        """Hold every lock in ``keys`` for the duration of the block."""
        ordered = sorted(set(keys))
        acquired: list[SlotKey] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._checkin(key)

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every request handled by this process
slot_locks = SlotLockRegistry()
