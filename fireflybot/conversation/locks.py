"""
Per-chat mutual exclusion.

At most one message per chat is processed at a time; different chats never
wait on each other. Entries are dropped as soon as no task holds or waits for
them.
"""

import asyncio
from contextlib import asynccontextmanager


class ChatLocks:
    """Registry of asyncio locks keyed by chat id."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, chat_id: str):
        """Hold the lock for ``chat_id`` for the duration of the block."""
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if self._users[chat_id] == 0:
                del self._users[chat_id]
                del self._locks[chat_id]

    def is_locked(self, chat_id: str) -> bool:
        lock = self._locks.get(chat_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
