"""Base tool interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    output: Any
    error: str | None = None
    metadata: dict[str, Any] | None = None

    def to_payload(self) -> Any:
        """Value fed back to the model: the output, or {"error": message}."""
        if self.success:
            return self.output
        return {"error": self.error or "Unknown error"}


class Tool(ABC):
    """Base interface for all tools."""

    # Arguments filled in by the agent loop from the current turn rather
    # than by the model. They are hidden from the schema the model sees.
    scope_args: tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @property
    def output_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool output."""
        return {}

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""
        ...

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """Validate arguments against schema. Returns (valid, error_message)."""
        required = self.parameters.get("required", [])
        properties = self.parameters.get("properties", {})

        # Check required fields
        for field in required:
            if field not in args:
                return False, f"Missing required argument: {field}"

        # Check types (basic validation)
        for key, value in args.items():
            if key not in properties or value is None:
                continue
            expected_type = properties[key].get("type")
            if expected_type not in _JSON_TYPES:
                continue
            article = "an" if expected_type[0] in "aeiou" else "a"
            # bool is an int subclass; only accept it where booleans are expected
            if isinstance(value, bool) and expected_type != "boolean":
                return False, f"Argument '{key}' must be {article} {expected_type}"
            if not isinstance(value, _JSON_TYPES[expected_type]):
                return False, f"Argument '{key}' must be {article} {expected_type}"

            allowed = properties[key].get("enum")
            if allowed and value not in allowed:
                return False, f"Argument '{key}' must be one of: {', '.join(map(str, allowed))}"

        return True, None
