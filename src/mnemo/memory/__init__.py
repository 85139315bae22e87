"""Memory module for per-session fact accumulation."""

from .manager import MemoryManager
from .tools import RememberTool

__all__ = [
    "MemoryManager",
    "RememberTool",
]
