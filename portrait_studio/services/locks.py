from __future__ import annotations

import asyncio
import weakref


class UserLocks:
    """One asyncio.Lock per key (user id, checkout id), serialising read-modify-write of its document.

    Entries live only while a holder or waiter references the lock.
    Only coordinates coroutines inside one process.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
