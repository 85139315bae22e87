"""Session management and per-session serialization."""

from .manager import SessionManager

__all__ = ["SessionManager"]
