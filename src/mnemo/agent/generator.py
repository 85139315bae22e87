"""Response generator: one structured language-model call per loop iteration."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from groq import AsyncGroq

from ..models import ToolRequest
from .prompt import build_system_prompt, build_turn_prompt, format_memory

logger = logging.getLogger(__name__)

DEFAULT_REASONING = "No reasoning was provided."


class GeneratorError(Exception):
    """The model produced no usable output. Fatal to the turn."""


@dataclass(frozen=True)
class PromptInput:
    """Input for a single generator call.

    Attributes:
        user_message: The user's message, or "" once a tool result is being
            processed.
        memory: Fact texts in creation order.
        tool_response: The previous tool's result as text, if any.
    """

    user_message: str
    memory: list[str] = field(default_factory=list)
    tool_response: str | None = None


@dataclass(frozen=True)
class GeneratorOutput:
    """Structured result of a generator call."""

    reasoning: str
    response: str | None = None
    new_facts: list[str] = field(default_factory=list)
    tool_request: ToolRequest | None = None


class ResponseGenerator(Protocol):
    """Anything that maps a prompt input to a structured output."""

    async def generate(self, prompt_input: PromptInput) -> GeneratorOutput:
        """Produce a response or tool request plus reasoning and new facts."""
        ...


def _strip_code_fence(content: str) -> str:
    """Remove a surrounding Markdown code block, if any."""
    text = content.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines)


def parse_output(content: str) -> GeneratorOutput:
    """Parse raw model output into a GeneratorOutput.

    The output must be a JSON object. Missing or malformed optional fields
    are normalized rather than rejected.

    Raises:
        GeneratorError: If the content is empty or not a JSON object.
    """
    if not content or not content.strip():
        raise GeneratorError("The AI model did not produce any output.")

    try:
        data = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise GeneratorError(f"The AI model produced unparseable output: {e}") from e

    if not isinstance(data, dict):
        raise GeneratorError("The AI model output is not a JSON object.")

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = DEFAULT_REASONING

    response = data.get("response")
    if not isinstance(response, str):
        response = None

    new_facts = []
    raw_facts = data.get("newFacts") or []
    if isinstance(raw_facts, list):
        for item in raw_facts:
            if isinstance(item, str) and item.strip():
                new_facts.append(item.strip())
            else:
                logger.warning(f"Skipping invalid fact item: {item!r}")

    tool_request = None
    raw_request = data.get("toolRequest")
    if isinstance(raw_request, dict) and isinstance(raw_request.get("name"), str):
        name = raw_request["name"].strip()
        tool_input = raw_request.get("input")
        if not isinstance(tool_input, dict):
            tool_input = {}
        if name:
            tool_request = ToolRequest(name=name, input=tool_input)

    return GeneratorOutput(
        reasoning=reasoning,
        response=response,
        new_facts=new_facts,
        tool_request=tool_request,
    )


class GroqResponseGenerator:
    """ResponseGenerator backed by a Groq chat completion in JSON mode.

    Each call is independent and is not retried; the same input can yield a
    different output on the next call.
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = "llama-3.3-70b-versatile",
        tools_schema: list[dict[str, Any]] | None = None,
        temperature: float = 0.3,
    ) -> None:
        """Initialize the generator.

        Args:
            client: The AsyncGroq client instance.
            model: The model to use for completions.
            tools_schema: Schemas of the tools the model may request.
            temperature: Sampling temperature.
        """
        self.client = client
        self.model = model
        self.temperature = temperature
        self.system_prompt = build_system_prompt(tools_schema or [])

    async def generate(self, prompt_input: PromptInput) -> GeneratorOutput:
        """Call the model once and parse its structured output.

        Raises:
            GeneratorError: If the model returns nothing usable.
        """
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {
                    "role": "user",
                    "content": build_turn_prompt(
                        format_memory(prompt_input.memory),
                        prompt_input.user_message,
                        prompt_input.tool_response,
                    ),
                },
            ],
            response_format={"type": "json_object"},
            temperature=self.temperature,
        )

        if not response.choices:
            raise GeneratorError("The AI model did not produce any output.")

        return parse_output(response.choices[0].message.content or "")
