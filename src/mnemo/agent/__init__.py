"""Agent loop and core logic."""

from .generator import (
    GeneratorError,
    GeneratorOutput,
    GroqResponseGenerator,
    PromptInput,
    ResponseGenerator,
)
from .loop import (
    ERROR_RESPONSE,
    EXHAUSTED_RESPONSE,
    AgentConfig,
    AgentLoop,
    StopReason,
    TurnResult,
    UnknownToolError,
)

__all__ = [
    "ERROR_RESPONSE",
    "EXHAUSTED_RESPONSE",
    "AgentConfig",
    "AgentLoop",
    "GeneratorError",
    "GeneratorOutput",
    "GroqResponseGenerator",
    "PromptInput",
    "ResponseGenerator",
    "StopReason",
    "TurnResult",
    "UnknownToolError",
]
