"""Memory manager for loading, formatting and saving session facts."""

from __future__ import annotations

from typing import Iterable

from ..models import SOURCE_AGENT, MemoryFact
from ..store import ConversationStore


class MemoryManager:
    """Orchestrates memory operations: loading, formatting, and storage.

    Facts are scoped to a (user_id, session_id) pair, append-only, and
    handed to the model wholesale on every call.
    """

    def __init__(self, store: ConversationStore) -> None:
        """Initialize the manager with a store.

        Args:
            store: The ConversationStore for persistence.
        """
        self.store = store

    def load(self, user_id: str, session_id: str) -> list[MemoryFact]:
        """Load all facts of a session, oldest first."""
        return self.store.list_facts(user_id, session_id)

    def remember(
        self,
        user_id: str,
        session_id: str,
        texts: Iterable[str],
        source: str = SOURCE_AGENT,
    ) -> list[MemoryFact]:
        """Persist new facts as one batch.

        Returns:
            The saved facts (blank texts are dropped).
        """
        return self.store.add_facts(user_id, session_id, texts, source)
