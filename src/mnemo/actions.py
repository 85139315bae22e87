"""Actions exposed to a chat front end: send a turn, reset a conversation."""

import logging
from typing import Any, Callable

from .agent import AgentLoop, TurnResult
from .session import SessionManager

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, str], None]


class ChatActions:
    """Request/response entry points that hide the agent loop.

    Turns on one session are serialized through the session manager's lock.
    `on_change(user_id, session_id)` is called after every turn or reset so
    a front end can refresh its views.
    """

    def __init__(
        self,
        agent: AgentLoop,
        sessions: SessionManager,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.agent = agent
        self.sessions = sessions
        self.on_change = on_change

    def _notify(self, user_id: str, session_id: str) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(user_id, session_id)
        except Exception as e:
            logger.warning(f"Change callback failed for session {session_id}: {e}")

    async def run_turn(
        self,
        session_id: str,
        user_message: str,
        user_id: str,
    ) -> TurnResult:
        """Validate input and run one turn under the session lock.

        Raises:
            ValueError: If session_id, user_message or user_id is missing.
                Nothing is written in that case.
        """
        if not session_id or not user_message or not user_message.strip() or not user_id:
            raise ValueError("Session ID, user message, and user ID are required.")

        async with self.sessions.lock(user_id, session_id):
            try:
                self.sessions.ensure(user_id, session_id)
            except Exception as e:
                # The turn reports store failures itself
                logger.warning(f"Could not record session {session_id}: {e}")
            result = await self.agent.handle_turn(session_id, user_id, user_message)

        self._notify(user_id, session_id)
        return result

    async def send_turn(
        self,
        session_id: str,
        user_message: str,
        user_id: str,
    ) -> dict[str, Any]:
        """Handle a user message and return the assistant message.

        A failed turn still stores its apology, and the reply carries that
        row's id. The id is "error" only when the apology could not be
        stored either.

        Returns:
            {"id": ..., "role": "assistant", "content": ...}
        """
        result = await self.run_turn(session_id, user_message, user_id)
        message_id = str(result.message_id) if result.message_id is not None else "error"
        return {"id": message_id, "role": "assistant", "content": result.content}

    async def reset_conversation(self, user_id: str, session_id: str) -> dict[str, Any]:
        """Delete all messages, facts and steps of a session."""
        if not user_id or not session_id:
            return {"success": False, "error": "User ID and Session ID are required."}

        try:
            await self.sessions.destroy(user_id, session_id)
        except Exception as e:
            logger.exception(f"Error resetting session {session_id}")
            return {"success": False, "error": str(e)}

        self._notify(user_id, session_id)
        return {"success": True}
