"""Memory tool for explicit fact saving."""

from typing import Any

from ..models import SOURCE_TOOL
from ..tools.base import Tool, ToolResult
from .manager import MemoryManager


class RememberTool(Tool):
    """Tool for saving a fact the user explicitly asks to remember."""

    scope_args = ("user_id", "session_id")

    def __init__(self, memory: MemoryManager) -> None:
        """Initialize with a memory manager.

        Args:
            memory: The MemoryManager for persistence.
        """
        self.memory = memory

    @property
    def name(self) -> str:
        return "remember"

    @property
    def description(self) -> str:
        return (
            "Save a fact for the rest of this conversation. "
            "Use when the user explicitly asks to remember something."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "fact": {
                    "type": "string",
                    "description": (
                        "The fact to remember as a short statement "
                        "(e.g., 'The user's dog is called Rex')"
                    ),
                },
                "user_id": {"type": "string"},
                "session_id": {"type": "string"},
            },
            "required": ["fact"],
        }

    async def execute(self, **kwargs: Any) -> ToolResult:
        """Save a fact to memory.

        Args:
            fact: The fact content.

        Returns:
            ToolResult with success status.
        """
        fact = kwargs.get("fact", "")
        user_id = kwargs.get("user_id")
        session_id = kwargs.get("session_id")

        if not fact or not fact.strip():
            return ToolResult(
                success=False,
                output="",
                error="'fact' is required",
            )
        if not user_id or not session_id:
            return ToolResult(
                success=False,
                output="",
                error="User ID and Session ID are required to remember a fact.",
            )

        saved = self.memory.remember(user_id, session_id, [fact], source=SOURCE_TOOL)

        return ToolResult(
            success=True,
            output=f"Remembered: {saved[0].text}",
        )
