"""Data models for conversations, memory and the step trace."""

from dataclasses import dataclass, field
from typing import Any

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)

SOURCE_USER = "user"
SOURCE_AGENT = "agent"
SOURCE_TOOL = "tool"
SOURCES = (SOURCE_USER, SOURCE_AGENT, SOURCE_TOOL)


@dataclass(frozen=True)
class Session:
    """A bounded conversation owned by a user."""

    user_id: str
    session_id: str
    created_at: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    """A message in a session transcript. Never mutated after creation."""

    role: str
    content: str
    id: int | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class MemoryFact:
    """An atomic piece of information retained across turns of a session.

    Attributes:
        text: The fact as a short statement.
        id: Database ID, None for unsaved facts.
        source: 'agent' for model-extracted, 'tool' for saved through a
            tool call, 'user' for facts entered directly.
        created_at: ISO timestamp when created.
    """

    text: str
    id: int | None = None
    source: str = SOURCE_AGENT
    created_at: str | None = None


@dataclass
class LogStep:
    """One diagnostic record of a loop iteration.

    Payload fields are loosely typed: they are written for humans and never
    read back by the agent loop.
    """

    user_message: str | None = None
    reasoning: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_results: list[Any] | None = None
    final_response: str | None = None
    id: int | None = None
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "user_message": self.user_message,
            "reasoning": self.reasoning,
            "tool_calls": self.tool_calls,
            "tool_results": self.tool_results,
            "final_response": self.final_response,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class ToolRequest:
    """A model-produced instruction to run a tool. Not persisted."""

    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TodoItem:
    """A to-do list entry managed by the todo tool."""

    id: str
    text: str
    completed: bool = False
    created_at: str | None = None
