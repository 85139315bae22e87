"""Turn logger: append-only step trace for each agent loop iteration.

Steps are written to the conversation store so they can be shown next to
the transcript. Writing a step must never break a turn, so failures are
reported through the standard logging module and otherwise dropped.
"""

import logging

from .models import LogStep
from .store import ConversationStore

logger = logging.getLogger(__name__)


class TurnLogger:
    """Records reasoning, tool activity and final responses per iteration."""

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    def append_step(self, user_id: str, session_id: str, step: LogStep) -> LogStep | None:
        """Append a step, timestamped at write time.

        Returns:
            The stored step, or None if the write failed.
        """
        try:
            return self.store.add_step(user_id, session_id, step)
        except Exception as e:
            logger.warning(f"Dropping log step for session {session_id}: {e}")
            return None

    def list_steps(self, user_id: str, session_id: str) -> list[LogStep]:
        """Get the step trace of a session, oldest first."""
        return self.store.list_steps(user_id, session_id)
