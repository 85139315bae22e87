"""To-do list tool backed by the conversation store."""

from typing import Any

from ..store import ConversationStore
from .base import Tool, ToolResult

ACTIONS = ("add", "list", "complete")


class TodoTool(Tool):
    """Add, list and complete to-do items of the current session."""

    scope_args = ("user_id", "session_id")

    def __init__(self, store: ConversationStore) -> None:
        """Initialize with a conversation store.

        Args:
            store: The ConversationStore holding the to-do items.
        """
        self.store = store

    @property
    def name(self) -> str:
        return "todo"

    @property
    def description(self) -> str:
        return (
            "A to-do list tool. It can add items, list open items, and mark "
            "one or more items as complete. Items belong to the current "
            "conversation."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": list(ACTIONS),
                    "description": "The action to perform on the to-do list.",
                },
                "text": {
                    "type": "string",
                    "description": "The text of the item for the `add` action.",
                },
                "ids": {
                    "anyOf": [
                        {"type": "string"},
                        {"type": "array", "items": {"type": "string"}},
                    ],
                    "description": "The id or list of ids of the item(s) to `complete`.",
                },
                "user_id": {"type": "string"},
                "session_id": {"type": "string"},
            },
            "required": ["action"],
        }

    @property
    def output_schema(self) -> dict[str, Any]:
        return {"type": "object"}

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Run a to-do action.

        Args:
            action: 'add', 'list' or 'complete'.
            text: Item text, for 'add'.
            ids: One id or a list of ids, for 'complete'.
            user_id: Owner, filled in by the agent loop.
            session_id: Session scope, filled in by the agent loop.

        Returns:
            ToolResult with a structured output, or an error.
        """
        action = kwargs.get("action")
        user_id = kwargs.get("user_id") or ""
        session_id = kwargs.get("session_id")

        try:
            if action == "add":
                return self._add(user_id, session_id, kwargs.get("text"))
            if action == "list":
                return self._list(user_id, session_id)
            if action == "complete":
                return self._complete(user_id, kwargs.get("ids"))
        except Exception as e:
            return ToolResult(
                success=False,
                output="",
                error=f"An error occurred while executing the to-do tool: {e}",
            )

        return ToolResult(success=False, output="", error=f"Unknown action: {action}")

    def _add(self, user_id: str, session_id: str | None, text: Any) -> ToolResult:
        if not text or not isinstance(text, str):
            return ToolResult(
                success=False,
                output="",
                error="`text` is required for the `add` action.",
            )

        item = self.store.add_todo(user_id, session_id, text)
        return ToolResult(
            success=True,
            output={
                "success": True,
                "message": f'Successfully added to-do item: "{text}"',
                "id": item.id,
            },
        )

    def _list(self, user_id: str, session_id: str | None) -> ToolResult:
        items = self.store.list_todos(user_id, session_id)
        return ToolResult(
            success=True,
            output={
                "items": [
                    {"id": item.id, "text": item.text, "createdAt": item.created_at}
                    for item in items
                ]
            },
        )

    def _complete(self, user_id: str, ids: Any) -> ToolResult:
        if ids is None:
            return ToolResult(
                success=False,
                output="",
                error="`ids` field is required for the `complete` action.",
            )

        ids_to_complete = ids if isinstance(ids, list) else [ids]
        if not ids_to_complete:
            return ToolResult(success=False, output="", error="No IDs provided to complete.")
        if not all(isinstance(i, str) and i for i in ids_to_complete):
            return ToolResult(
                success=False,
                output="",
                error="`ids` must be a string or a list of strings.",
            )

        try:
            completed = self.store.complete_todos(user_id, ids_to_complete)
        except KeyError as e:
            return ToolResult(
                success=False,
                output="",
                error=f"No to-do item with id {e.args[0]}; nothing was completed.",
            )

        return ToolResult(
            success=True,
            output={
                "success": True,
                "message": f"Successfully completed {len(completed)} item(s).",
                "completed_ids": completed,
            },
        )
