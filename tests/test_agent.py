"""Tests for agent loop."""

import asyncio
import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mnemo.agent import (
    ERROR_RESPONSE,
    EXHAUSTED_RESPONSE,
    AgentConfig,
    AgentLoop,
    GeneratorError,
    GeneratorOutput,
    PromptInput,
    StopReason,
)
from mnemo.logging import JSONLLogger
from mnemo.memory import MemoryManager, RememberTool
from mnemo.models import ToolRequest
from mnemo.store import ConversationStore
from mnemo.tools import CalculatorTool, TodoTool, Tool, ToolRegistry, ToolResult


class ScriptedGenerator:
    """Generator double that replays outputs and records its inputs."""

    def __init__(self, outputs):
        self.outputs = list(outputs)
        self.calls: list[PromptInput] = []

    async def generate(self, prompt_input: PromptInput) -> GeneratorOutput:
        self.calls.append(prompt_input)
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(output, Exception):
            raise output
        return output


class SlowGenerator:
    async def generate(self, prompt_input: PromptInput) -> GeneratorOutput:
        await asyncio.sleep(1)
        return GeneratorOutput(reasoning="late", response="too late")


class FactSnapshotTool(Tool):
    """Records the session's facts at the moment it runs."""

    scope_args = ("user_id", "session_id")

    def __init__(self, store: ConversationStore):
        self.store = store
        self.seen_facts: list[str] | None = None

    @property
    def name(self) -> str:
        return "fact_snapshot"

    @property
    def description(self) -> str:
        return "Snapshot the stored facts"

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs) -> ToolResult:
        facts = self.store.list_facts(kwargs["user_id"], kwargs["session_id"])
        self.seen_facts = [f.text for f in facts]
        return ToolResult(success=True, output="snapshot taken")


class SlowTool(Tool):
    @property
    def name(self) -> str:
        return "slow"

    @property
    def description(self) -> str:
        return "Sleeps"

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs) -> ToolResult:
        await asyncio.sleep(1)
        return ToolResult(success=True, output="done")


def answer(text: str, facts: list[str] | None = None) -> GeneratorOutput:
    return GeneratorOutput(reasoning="answering", response=text, new_facts=facts or [])


def call(name: str, **tool_input) -> GeneratorOutput:
    return GeneratorOutput(
        reasoning=f"need {name}",
        tool_request=ToolRequest(name=name, input=tool_input),
    )


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    store = ConversationStore(tmp_path / "agent.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def registry(store: ConversationStore) -> ToolRegistry:
    return ToolRegistry(
        [TodoTool(store), CalculatorTool(), RememberTool(MemoryManager(store))]
    )


def make_loop(store, registry, generator, **config) -> AgentLoop:
    return AgentLoop(store, registry, generator, config=AgentConfig(**config))


@pytest.mark.asyncio
async def test_direct_answer(store, registry) -> None:
    generator = ScriptedGenerator([answer("Hi there!")])
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "hello")

    assert result.content == "Hi there!"
    assert result.stop_reason == StopReason.COMPLETE
    assert result.iterations == 1
    assert result.message_id is not None

    messages = store.list_messages("u1", "s1")
    assert [(m.role, m.content) for m in messages] == [
        ("user", "hello"),
        ("assistant", "Hi there!"),
    ]
    steps = store.list_steps("u1", "s1")
    assert len(steps) == 1
    assert steps[0].final_response == "Hi there!"
    assert steps[0].user_message == "hello"


@pytest.mark.asyncio
async def test_tool_call_then_answer(store, registry) -> None:
    generator = ScriptedGenerator(
        [call("todo", action="add", text="milk"), answer("Added milk.")]
    )
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "add milk to my list")

    assert result.content == "Added milk."
    assert result.iterations == 2
    assert result.tool_calls == [
        {"name": "todo", "arguments": {"action": "add", "text": "milk"}}
    ]
    assert [i.text for i in store.list_todos("u1", "s1")] == ["milk"]

    steps = store.list_steps("u1", "s1")
    assert len(steps) == 2
    assert steps[0].tool_calls == result.tool_calls
    assert steps[0].tool_results[0]["success"] is True
    assert steps[1].final_response == "Added milk."

    # The follow-up call sees the tool result instead of the user message
    follow_up = generator.calls[1]
    assert follow_up.user_message == ""
    assert "Successfully added to-do item" in follow_up.tool_response
    assert json.loads(follow_up.tool_response)["success"] is True


@pytest.mark.asyncio
async def test_calculator_result_fed_back(store, registry) -> None:
    generator = ScriptedGenerator(
        [call("math_evaluator", expression="2+3*4"), answer("It is 14.")]
    )
    loop = make_loop(store, registry, generator)

    await loop.handle_turn("s1", "u1", "what is 2+3*4?")

    assert generator.calls[1].tool_response == "14"
    assert store.list_steps("u1", "s1")[0].tool_results == ["14"]


@pytest.mark.asyncio
async def test_tool_error_is_fed_back(store, registry) -> None:
    generator = ScriptedGenerator(
        [call("math_evaluator", expression="1/0"), answer("You can't divide by zero.")]
    )
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "1/0?")

    assert result.stop_reason == StopReason.COMPLETE
    payload = store.list_steps("u1", "s1")[0].tool_results[0]
    assert payload == {"error": "Error evaluating expression: Division by zero"}
    assert "Division by zero" in generator.calls[1].tool_response


@pytest.mark.asyncio
async def test_unknown_tool_is_fatal(store, registry) -> None:
    generator = ScriptedGenerator([call("weather", city="Paris"), answer("never")])
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "weather?")

    assert result.content == ERROR_RESPONSE
    assert result.stop_reason == StopReason.ERROR
    assert result.error == "Unknown tool: weather"
    assert len(generator.calls) == 1

    steps = store.list_steps("u1", "s1")
    assert steps[0].tool_calls == [{"name": "weather", "arguments": {"city": "Paris"}}]
    assert steps[-1].reasoning.startswith("Error:")
    assert store.list_messages("u1", "s1")[-1].content == ERROR_RESPONSE


@pytest.mark.asyncio
async def test_exhaustion_without_response(store, registry) -> None:
    generator = ScriptedGenerator([GeneratorOutput(reasoning="thinking...")])
    loop = make_loop(store, registry, generator, max_tool_loops=5)

    result = await loop.handle_turn("s1", "u1", "hmm")

    assert result.content == EXHAUSTED_RESPONSE
    assert result.stop_reason == StopReason.EXHAUSTED
    assert result.iterations == 5
    assert len(generator.calls) == 5

    steps = store.list_steps("u1", "s1")
    assert len(steps) == 6
    assert steps[-1].reasoning.startswith("Exhausted")
    assert steps[-1].final_response == EXHAUSTED_RESPONSE
    assert store.list_messages("u1", "s1")[-1].content == EXHAUSTED_RESPONSE


@pytest.mark.asyncio
async def test_exhaustion_with_repeated_tool_calls(store, registry) -> None:
    generator = ScriptedGenerator([call("math_evaluator", expression="1+1")])
    loop = make_loop(store, registry, generator, max_tool_loops=3)

    result = await loop.handle_turn("s1", "u1", "loop forever")

    assert result.stop_reason == StopReason.EXHAUSTED
    assert result.iterations == 3
    assert len(result.tool_calls) == 3


@pytest.mark.asyncio
async def test_blank_response_is_not_final(store, registry) -> None:
    generator = ScriptedGenerator(
        [GeneratorOutput(reasoning="r", response="   "), answer("Now I know.")]
    )
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "hi")

    assert result.content == "Now I know."
    assert result.iterations == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name", ["functions.math_evaluator", "tools/math_evaluator", "default_api:math_evaluator"]
)
async def test_namespaced_tool_name(store, registry, name: str) -> None:
    generator = ScriptedGenerator(
        [call(name, expression="6*7"), answer("42")]
    )
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "6*7?")

    assert result.stop_reason == StopReason.COMPLETE
    assert generator.calls[1].tool_response == "42"


def test_resolve_tool(store, registry) -> None:
    loop = make_loop(store, registry, ScriptedGenerator([answer("x")]))

    assert loop.resolve_tool("todo").name == "todo"
    assert loop.resolve_tool("a.b.todo").name == "todo"
    assert loop.resolve_tool("todo.") is None
    assert loop.resolve_tool("missing") is None


@pytest.mark.asyncio
async def test_tool_request_wins_over_response(store, registry) -> None:
    both = GeneratorOutput(
        reasoning="both",
        response="ignored",
        tool_request=ToolRequest(name="math_evaluator", input={"expression": "1+1"}),
    )
    generator = ScriptedGenerator([both, answer("2")])
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "1+1")

    assert result.content == "2"
    assert len(generator.calls) == 2
    assert store.list_steps("u1", "s1")[0].final_response is None


@pytest.mark.asyncio
async def test_facts_persisted_before_tool_runs(store) -> None:
    snapshot = FactSnapshotTool(store)
    registry = ToolRegistry([snapshot])
    first = GeneratorOutput(
        reasoning="r",
        new_facts=["dog is Rex"],
        tool_request=ToolRequest(name="fact_snapshot", input={}),
    )
    generator = ScriptedGenerator([first, answer("ok")])
    loop = make_loop(store, registry, generator)

    await loop.handle_turn("s1", "u1", "my dog is Rex")

    assert snapshot.seen_facts == ["dog is Rex"]
    assert generator.calls[1].memory == ["dog is Rex"]


@pytest.mark.asyncio
async def test_facts_persist_across_turns(store, registry) -> None:
    store.add_facts("u1", "s1", ["likes tea"], "agent")
    generator = ScriptedGenerator(
        [answer("Noted.", facts=["lives in Lyon"]), answer("Tea in Lyon!")]
    )
    loop = make_loop(store, registry, generator)

    await loop.handle_turn("s1", "u1", "I live in Lyon")
    await loop.handle_turn("s1", "u1", "what do you know?")

    assert generator.calls[0].memory == ["likes tea"]
    assert generator.calls[1].memory == ["likes tea", "lives in Lyon"]
    assert [f.source for f in store.list_facts("u1", "s1")] == ["agent", "agent"]


@pytest.mark.asyncio
async def test_scope_args_come_from_turn(store, registry) -> None:
    store.add_todo("u2", "s1", "someone else's item")
    generator = ScriptedGenerator(
        [call("todo", action="list", user_id="u2"), answer("Nothing open.")]
    )
    loop = make_loop(store, registry, generator)

    await loop.handle_turn("s1", "u1", "what's on my list?")

    assert json.loads(generator.calls[1].tool_response) == {"items": []}


@pytest.mark.asyncio
async def test_generator_error(store, registry) -> None:
    generator = ScriptedGenerator([GeneratorError("The AI model did not produce any output.")])
    loop = make_loop(store, registry, generator)

    result = await loop.handle_turn("s1", "u1", "hi")

    assert result.content == ERROR_RESPONSE
    assert result.stop_reason == StopReason.ERROR
    assert "did not produce any output" in result.error
    steps = store.list_steps("u1", "s1")
    assert len(steps) == 1
    assert steps[0].reasoning.startswith("Error:")
    assert [m.role for m in store.list_messages("u1", "s1")] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_model_timeout(store, registry) -> None:
    loop = make_loop(store, registry, SlowGenerator(), model_timeout=0.01)

    result = await loop.handle_turn("s1", "u1", "hi")

    assert result.stop_reason == StopReason.ERROR
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_tool_timeout_becomes_error_result(store) -> None:
    registry = ToolRegistry([SlowTool()])
    generator = ScriptedGenerator([call("slow"), answer("The tool was too slow.")])
    loop = make_loop(store, registry, generator, tool_timeout=0.01)

    result = await loop.handle_turn("s1", "u1", "go")

    assert result.stop_reason == StopReason.COMPLETE
    payload = store.list_steps("u1", "s1")[0].tool_results[0]
    assert payload == {"error": "Tool 'slow' timed out after 0.01s"}


@pytest.mark.asyncio
async def test_store_failure_returns_apology() -> None:
    store = MagicMock()
    store.add_message.side_effect = RuntimeError("database is locked")
    loop = AgentLoop(store, ToolRegistry(), ScriptedGenerator([answer("never")]))

    result = await loop.handle_turn("s1", "u1", "hi")

    assert result.content == ERROR_RESPONSE
    assert result.stop_reason == StopReason.ERROR
    assert result.message_id is None
    assert result.iterations == 0


@pytest.mark.asyncio
async def test_telemetry_logs_tool_calls(store, registry, tmp_path: Path) -> None:
    telemetry = JSONLLogger(log_dir=tmp_path / "logs")
    generator = ScriptedGenerator([call("math_evaluator", expression="1+1"), answer("2")])
    loop = AgentLoop(store, registry, generator, telemetry=telemetry)

    await loop.handle_turn("s1", "u1", "1+1")

    entries = [json.loads(line) for line in telemetry.log_path.read_text().splitlines()]
    assert [e["event"] for e in entries] == [
        "model_call",
        "tool_call",
        "tool_result",
        "model_call",
    ]
    assert entries[0]["iteration"] == 1
    assert entries[0]["extra"]["tool_requested"] == "math_evaluator"
    assert entries[1]["tool_name"] == "math_evaluator"
    assert entries[1]["extra"]["tool_args"] == {"expression": "1+1"}
    assert entries[2]["extra"]["success"] is True
    assert entries[2]["duration_ms"] >= 0
    assert entries[3]["iteration"] == 2


@pytest.mark.asyncio
async def test_telemetry_logs_failed_model_call(store, registry, tmp_path: Path) -> None:
    telemetry = JSONLLogger(log_dir=tmp_path / "logs")
    generator = ScriptedGenerator([GeneratorError("The AI model did not produce any output.")])
    loop = AgentLoop(store, registry, generator, telemetry=telemetry)

    await loop.handle_turn("s1", "u1", "hi")

    entry = json.loads(telemetry.log_path.read_text().splitlines()[0])
    assert entry["event"] == "model_call"
    assert "did not produce any output" in entry["error"]


class FailingTelemetry(JSONLLogger):
    """Telemetry logger whose every write fails."""

    def log(self, event, **fields) -> None:
        raise OSError("No space left on device")


@pytest.mark.asyncio
async def test_telemetry_failure_does_not_fail_turn(store, registry, tmp_path: Path) -> None:
    telemetry = FailingTelemetry(log_dir=tmp_path / "logs")
    generator = ScriptedGenerator([answer("Hello!")])
    loop = AgentLoop(store, registry, generator, telemetry=telemetry)

    result = await loop.handle_turn("s1", "u1", "hi")

    assert result.stop_reason == StopReason.COMPLETE
    assert result.content == "Hello!"


@pytest.mark.asyncio
async def test_telemetry_failure_keeps_tool_result(store, registry, tmp_path: Path) -> None:
    telemetry = FailingTelemetry(log_dir=tmp_path / "logs")
    generator = ScriptedGenerator([call("todo", action="add", text="milk"), answer("Added.")])
    loop = AgentLoop(store, registry, generator, telemetry=telemetry)

    result = await loop.handle_turn("s1", "u1", "add milk")

    assert result.stop_reason == StopReason.COMPLETE
    assert result.content == "Added."
    assert [i.text for i in store.list_todos("u1", "s1")] == ["milk"]
