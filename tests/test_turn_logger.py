"""Tests for TurnLogger."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mnemo.models import LogStep
from mnemo.store import ConversationStore
from mnemo.turn_logger import TurnLogger


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    store = ConversationStore(tmp_path / "steps.db")
    store.init_db()
    yield store
    store.close()


def test_append_and_list(store: ConversationStore):
    turn_logger = TurnLogger(store)

    saved = turn_logger.append_step("u1", "s1", LogStep(user_message="hi", reasoning="greeting"))
    turn_logger.append_step("u1", "s1", LogStep(final_response="Hello!"))

    assert saved.id is not None
    assert saved.timestamp is not None
    steps = turn_logger.list_steps("u1", "s1")
    assert [s.reasoning for s in steps] == ["greeting", None]
    assert steps[1].final_response == "Hello!"


def test_steps_scoped_to_session(store: ConversationStore):
    turn_logger = TurnLogger(store)
    turn_logger.append_step("u1", "s1", LogStep(reasoning="a"))
    turn_logger.append_step("u1", "s2", LogStep(reasoning="b"))

    assert [s.reasoning for s in turn_logger.list_steps("u1", "s2")] == ["b"]


def test_write_failure_is_swallowed(caplog):
    store = MagicMock()
    store.add_step.side_effect = RuntimeError("disk full")
    turn_logger = TurnLogger(store)

    result = turn_logger.append_step("u1", "s1", LogStep(reasoning="r"))

    assert result is None
    assert "disk full" in caplog.text


def test_step_to_dict_drops_empty_fields():
    step = LogStep(reasoning="r", tool_calls=[{"name": "todo", "arguments": {}}])

    data = step.to_dict()

    assert data == {"reasoning": "r", "tool_calls": [{"name": "todo", "arguments": {}}]}
