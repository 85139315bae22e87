"""Tool registry and tool implementations."""

from .base import Tool, ToolResult
from .calculator import CalculatorTool
from .conversation import ConversationReviewTool
from .random_fact import RandomFactTool
from .registry import ToolRegistry
from .todo import TodoTool

__all__ = [
    "CalculatorTool",
    "ConversationReviewTool",
    "RandomFactTool",
    "TodoTool",
    "Tool",
    "ToolResult",
    "ToolRegistry",
]
