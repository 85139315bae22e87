"""Conversation review tool: searches the current session transcript."""

from typing import Any

from ..store import ConversationStore
from .base import Tool, ToolResult

NO_HISTORY_MESSAGE = "No conversation history found."


class ConversationReviewTool(Tool):
    """Read-only search over the ordered transcript of a session."""

    scope_args = ("user_id", "session_id")

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    @property
    def name(self) -> str:
        return "conversation_review"

    @property
    def description(self) -> str:
        return (
            "Searches the conversation transcript. If a 'query' is provided, it "
            "finds matching messages. If no 'query' is provided, it returns the "
            "entire conversation transcript. Use this when the user asks what "
            "was said previously."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        "The search term to find in the history. If omitted, "
                        "the full transcript is returned."
                    ),
                },
                "user_id": {"type": "string"},
                "session_id": {"type": "string"},
            },
            "required": [],
        }

    @property
    def output_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"result": {"type": "string"}}}

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Search the transcript.

        Matching is a case-insensitive substring test on message content.
        Lines are rendered as "{role}: {content}" in transcript order.
        """
        user_id = kwargs.get("user_id")
        session_id = kwargs.get("session_id")
        query = kwargs.get("query") or ""

        if not user_id or not session_id:
            return ToolResult(
                success=False,
                output="",
                error="User ID and Session ID are required to review the conversation.",
            )

        try:
            messages = self.store.list_messages(user_id, session_id)
        except Exception as e:
            return ToolResult(
                success=False,
                output="",
                error=f"An error occurred while searching the conversation: {e}",
            )

        if not messages:
            return ToolResult(success=True, output={"result": NO_HISTORY_MESSAGE})

        if query:
            needle = query.lower()
            messages = [m for m in messages if needle in m.content.lower()]

        if not messages:
            return ToolResult(
                success=True,
                output={"result": f'No messages found matching the query: "{query}"'},
            )

        transcript = "\n".join(f"{m.role}: {m.content}" for m in messages)
        header = (
            "Found matching messages in the transcript:\n"
            if query
            else "Full conversation transcript:\n"
        )
        return ToolResult(
            success=True,
            output={"result": header + transcript},
            metadata={"matches": len(messages)},
        )
