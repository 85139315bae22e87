"""Agent loop implementation."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..logging import JSONLLogger
from ..memory import MemoryManager
from ..models import ROLE_ASSISTANT, ROLE_USER, SOURCE_AGENT, LogStep, ToolRequest
from ..store import ConversationStore
from ..tools import Tool, ToolRegistry, ToolResult
from ..turn_logger import TurnLogger
from .generator import GeneratorError, GeneratorOutput, PromptInput, ResponseGenerator

logger = logging.getLogger(__name__)

EXHAUSTED_RESPONSE = "Sorry, I couldn't come up with a response."
ERROR_RESPONSE = "Sorry, something went wrong while processing your request."

# Separators of namespaced tool names such as "tools.todo" or "mcp/todo"
_NAMESPACE_SEPARATORS = re.compile(r"[./:]")


class UnknownToolError(Exception):
    """The model asked for a tool that is not registered. Fatal to the turn."""


class StopReason(Enum):
    """Reasons for stopping the agent loop."""

    COMPLETE = "complete"
    EXHAUSTED = "exhausted"
    ERROR = "error"


@dataclass
class AgentConfig:
    """Configuration for the agent loop."""

    model: str = "llama-3.3-70b-versatile"
    max_tool_loops: int = 5
    model_timeout: float | None = 60.0
    tool_timeout: float | None = 30.0


@dataclass
class TurnResult:
    """Result from handling one user turn."""

    content: str
    stop_reason: StopReason
    iterations: int
    message_id: int | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


def stringify_tool_result(payload: Any) -> str:
    """Render a tool payload as text for the next prompt."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False, default=str)


class AgentLoop:
    """Main agent loop: generate → act → observe, bounded per turn.

    A turn persists the user message, loads the session's facts, and calls
    the response generator up to `max_tool_loops` times. Each call may
    return new facts (saved right away), a tool request (executed and fed
    back), or a final response (which ends the turn).
    """

    def __init__(
        self,
        store: ConversationStore,
        registry: ToolRegistry,
        generator: ResponseGenerator,
        config: AgentConfig | None = None,
        turn_logger: TurnLogger | None = None,
        memory: MemoryManager | None = None,
        telemetry: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.generator = generator
        self.config = config or AgentConfig()
        self.turn_logger = turn_logger or TurnLogger(store)
        self.memory = memory or MemoryManager(store)
        self.telemetry = telemetry

    def resolve_tool(self, name: str) -> Tool | None:
        """Find a tool by exact name, then by its last namespace segment.

        Models sometimes prefix tool names ("functions.todo", "tools/todo");
        those resolve to the registered "todo".
        """
        tool = self.registry.get(name)
        if tool is not None:
            return tool

        segment = _NAMESPACE_SEPARATORS.split(name)[-1]
        if segment and segment != name:
            return self.registry.get(segment)
        return None

    async def _generate(
        self,
        prompt_input: PromptInput,
        iteration: int,
        session_id: str,
    ) -> GeneratorOutput:
        """Call the generator once, bounded by the model timeout."""
        start_time = time.time()
        try:
            output = await asyncio.wait_for(
                self.generator.generate(prompt_input),
                timeout=self.config.model_timeout,
            )
        except asyncio.TimeoutError as e:
            error = GeneratorError(
                f"Response generation timed out after {self.config.model_timeout}s"
            )
            self._log_model_call(iteration, session_id, start_time, error=str(error))
            raise error from e
        except Exception as e:
            self._log_model_call(iteration, session_id, start_time, error=str(e))
            raise

        self._log_model_call(
            iteration,
            session_id,
            start_time,
            tool_requested=output.tool_request.name if output.tool_request else None,
            new_facts=len(output.new_facts),
        )
        return output

    def _emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        """Write a telemetry event. A failed write is logged and dropped."""
        if self.telemetry is None:
            return
        try:
            getattr(self.telemetry, event)(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Dropping telemetry event {event}: {e}")

    def _log_model_call(
        self,
        iteration: int,
        session_id: str,
        start_time: float,
        **fields: Any,
    ) -> None:
        self._emit(
            "log_model_call",
            iteration,
            session_id=session_id,
            duration_ms=(time.time() - start_time) * 1000,
            **fields,
        )

    async def _invoke_tool(
        self,
        tool: Tool,
        request: ToolRequest,
        user_id: str,
        session_id: str,
    ) -> ToolResult:
        """Run a tool with the request input and the turn's scope arguments."""
        args = dict(request.input or {})
        scope = {"user_id": user_id, "session_id": session_id}
        for key in tool.scope_args:
            args[key] = scope[key]

        self._emit("log_tool_call", tool.name, request.input, session_id=session_id)

        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                self.registry.dispatch(tool.name, args),
                timeout=self.config.tool_timeout,
            )
        except asyncio.TimeoutError:
            result = ToolResult(
                success=False,
                output="",
                error=f"Tool '{tool.name}' timed out after {self.config.tool_timeout}s",
            )
        duration_ms = (time.time() - start_time) * 1000

        self._emit(
            "log_tool_result",
            tool.name,
            result.success,
            session_id=session_id,
            duration_ms=duration_ms,
            error=result.error,
        )

        return result

    async def handle_turn(
        self,
        session_id: str,
        user_id: str,
        user_message: str,
    ) -> TurnResult:
        """Turn one user message into tool calls and a final reply.

        Never raises: any failure is logged as an error step and answered
        with a fixed apology.

        Args:
            session_id: The conversation the turn belongs to.
            user_id: Owner of the conversation.
            user_message: The user's message.

        Returns:
            TurnResult with the assistant content and loop metadata.
        """
        tool_calls_log: list[dict[str, Any]] = []
        iteration = 0

        try:
            # Durability before any model call
            self.store.add_message(user_id, session_id, ROLE_USER, user_message)

            facts = self.memory.load(user_id, session_id)
            prompt_input = PromptInput(
                user_message=user_message,
                memory=[fact.text for fact in facts],
            )
            final_response = ""

            while iteration < self.config.max_tool_loops:
                iteration += 1
                output = await self._generate(prompt_input, iteration, session_id)

                if output.new_facts:
                    saved = self.memory.remember(
                        user_id, session_id, output.new_facts, source=SOURCE_AGENT
                    )
                    prompt_input = replace(
                        prompt_input,
                        memory=prompt_input.memory + [fact.text for fact in saved],
                    )

                step = LogStep(user_message=user_message, reasoning=output.reasoning)

                # A tool request wins if the model sent both
                if output.tool_request is not None:
                    request = output.tool_request
                    call_record = {"name": request.name, "arguments": request.input}
                    tool_calls_log.append(call_record)
                    step.tool_calls = [call_record]

                    tool = self.resolve_tool(request.name)
                    if tool is None:
                        self.turn_logger.append_step(user_id, session_id, step)
                        raise UnknownToolError(f"Unknown tool: {request.name}")

                    result = await self._invoke_tool(tool, request, user_id, session_id)
                    payload = result.to_payload()
                    step.tool_results = [payload]
                    self.turn_logger.append_step(user_id, session_id, step)

                    prompt_input = replace(
                        prompt_input,
                        user_message="",
                        tool_response=stringify_tool_result(payload),
                    )
                    continue

                if output.response and output.response.strip():
                    final_response = output.response
                    step.final_response = final_response
                    self.turn_logger.append_step(user_id, session_id, step)
                    break

                # Reasoning only: record it and ask again
                self.turn_logger.append_step(user_id, session_id, step)

            if final_response:
                stop_reason = StopReason.COMPLETE
            else:
                stop_reason = StopReason.EXHAUSTED
                final_response = EXHAUSTED_RESPONSE
                logger.warning(
                    f"Turn exhausted {self.config.max_tool_loops} iterations "
                    f"for session {session_id}"
                )
                self.turn_logger.append_step(
                    user_id,
                    session_id,
                    LogStep(
                        user_message=user_message,
                        reasoning=(
                            f"Exhausted: no final response after "
                            f"{self.config.max_tool_loops} iterations."
                        ),
                        final_response=final_response,
                    ),
                )

            message = self.store.add_message(
                user_id, session_id, ROLE_ASSISTANT, final_response
            )
            return TurnResult(
                content=final_response,
                stop_reason=stop_reason,
                iterations=iteration,
                message_id=message.id,
                tool_calls=tool_calls_log,
            )

        except Exception as e:
            logger.exception(f"Error handling turn for session {session_id}")
            return self._fail_turn(
                user_id, session_id, user_message, e, iteration, tool_calls_log
            )

    def _fail_turn(
        self,
        user_id: str,
        session_id: str,
        user_message: str,
        error: Exception,
        iterations: int,
        tool_calls: list[dict[str, Any]],
    ) -> TurnResult:
        """Record the error and store the fixed apology, best effort."""
        self.turn_logger.append_step(
            user_id,
            session_id,
            LogStep(user_message=user_message, reasoning=f"Error: {error}"),
        )

        message_id = None
        try:
            message = self.store.add_message(
                user_id, session_id, ROLE_ASSISTANT, ERROR_RESPONSE
            )
            message_id = message.id
        except Exception as store_error:
            logger.error(f"Error saving error message for session {session_id}: {store_error}")

        return TurnResult(
            content=ERROR_RESPONSE,
            stop_reason=StopReason.ERROR,
            iterations=iterations,
            message_id=message_id,
            tool_calls=tool_calls,
            error=str(error),
        )
