"""Random fact tool."""

import random
from typing import Any

from .base import Tool, ToolResult

FACTS = (
    "The Eiffel Tower can be 15 cm taller during the summer, due to thermal expansion.",
    "A bolt of lightning contains enough energy to toast 100,000 slices of bread.",
    "The average person walks the equivalent of five times around the world in their lifetime.",
    "Bananas are berries, but strawberries are not.",
    "A group of flamingos is called a flamboyance.",
)


class RandomFactTool(Tool):
    """Returns a random fact from a fixed list."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    @property
    def name(self) -> str:
        return "random_fact"

    @property
    def description(self) -> str:
        return "Returns a random fun fact. Use when the user asks for a fact or trivia."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}, "required": []}

    @property
    def output_schema(self) -> dict[str, Any]:
        return {"type": "string"}

    async def execute(self, **kwargs: Any) -> ToolResult:
        return ToolResult(success=True, output=self._rng.choice(FACTS))
