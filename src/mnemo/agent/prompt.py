"""Prompt builder for the response generator."""

from typing import Any

SYSTEM_PROMPT_BASE = """You are a helpful assistant with a persistent memory. Your goal is to be a good conversationalist.

You have access to the following tools:
{tools_description}

For every turn you receive the facts in your memory, the user's latest message, and, after a tool ran, the tool's result.

Your tasks are:
1. Either write a direct, conversational response to the user, or request exactly one tool when you need it. Never do both.
2. Briefly explain your reasoning, mentioning any memory facts you used.
3. Extract new, atomic facts worth remembering from the user's message or the tool result. If there are none, return an empty list.

Respond with a single JSON object and nothing else:
{{
  "reasoning": "<how you arrived at your answer>",
  "response": "<your reply to the user, or null when requesting a tool>",
  "newFacts": ["<fact>", ...],
  "toolRequest": {{"name": "<tool name>", "input": {{...}}}} or null
}}"""

TOOL_RESPONSE_BLOCK = """

## Tool Result:
{tool_response}

Use this result to answer the user, or request another tool if you still need one."""


def build_system_prompt(tools_schema: list[dict[str, Any]]) -> str:
    """Build the system prompt with the available tools.

    Args:
        tools_schema: List of tool schemas for the LLM.

    Returns:
        Complete system prompt string.
    """
    if not tools_schema:
        tools_desc = "No tools available."
    else:
        tools_desc = "\n".join(
            f"- {t['function']['name']}: {t['function']['description']}\n"
            f"  input schema: {t['function']['parameters']}"
            for t in tools_schema
        )

    return SYSTEM_PROMPT_BASE.format(tools_description=tools_desc)


def build_turn_prompt(
    memory_block: str,
    user_message: str,
    tool_response: str | None = None,
) -> str:
    """Build the per-call prompt with memory, message and tool result."""
    prompt = (
        f"## Memory Facts:\n{memory_block}\n\n"
        f'## User Message:\n"{user_message}"'
    )

    if tool_response is not None:
        prompt += TOOL_RESPONSE_BLOCK.format(tool_response=tool_response)

    return prompt


def format_memory(memory: list[str]) -> str:
    """Format fact texts as a bullet list, or note that memory is empty."""
    if not memory:
        return "- Your memory is currently empty."
    return "\n".join(f"- {text}" for text in memory)
