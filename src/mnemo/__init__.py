"""Mnemo: a conversational agent with per-session memory and tools."""

__version__ = "0.1.0"
