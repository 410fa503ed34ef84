"""Per-key asyncio locks; unrelated keys never contend."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, List


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLock:
    """
    Registry of asyncio locks keyed by an arbitrary hashable.

    Entries are dropped as soon as no holder or waiter remains, so the
    registry does not grow with the number of transfers ever seen.
    """

    def __init__(self):
        self._entries: Dict[Hashable, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)

    def locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
