"""In-process advisory locks keyed by document id."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class DocumentLockRegistry:
    """Hands out one asyncio.Lock per document id.

    Only serialises work inside a single process. Locks are dropped once no
    coroutine holds or waits for them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def is_locked(self, document_id: str) -> bool:
        lock = self._locks.get(document_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, document_id: str) -> AsyncIterator[None]:
        """Hold the lock of a document for the duration of the block."""
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._users[document_id] = self._users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[document_id] -= 1
            if self._users[document_id] == 0:
                del self._users[document_id]
                del self._locks[document_id]
