"""Session manager for per-session lifecycle and concurrency control."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..models import Session
from ..store import ConversationStore

SessionKey = tuple[str, str]


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0  # holders plus waiters


class SessionManager:
    """Manages session records, locks, and deletion.

    Turns on the same (user_id, session_id) are serialized with an
    asyncio.Lock, so two submissions never interleave their memory reads
    and writes. Turns on different sessions run independently. A session's
    lock only exists while someone holds or waits for it.
    """

    def __init__(self, store: ConversationStore) -> None:
        self.store = store
        self._locks: dict[SessionKey, _LockEntry] = {}

    def ensure(self, user_id: str, session_id: str) -> Session:
        """Get or create the session record."""
        return self.store.ensure_session(user_id, session_id)

    @asynccontextmanager
    async def lock(self, user_id: str, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock for the duration of the block."""
        key = (user_id, session_id)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def is_busy(self, user_id: str, session_id: str) -> bool:
        """Check if a session is currently processing a turn."""
        entry = self._locks.get((user_id, session_id))
        return entry is not None and entry.lock.locked()

    async def destroy(self, user_id: str, session_id: str) -> None:
        """Delete a session with its messages, facts and steps.

        Waits for a running turn on the session to finish first.
        """
        async with self.lock(user_id, session_id):
            self.store.delete_session(user_id, session_id)
