"""Structured turn telemetry written as JSON lines.

One line per event: model calls, tool calls and results, and the end of a
turn. This is for operators; the reasoning trace users see lives in the
conversation store (see turn_logger).
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

EVENT_MODEL_CALL = "model_call"
EVENT_TOOL_CALL = "tool_call"
EVENT_TOOL_RESULT = "tool_result"
EVENT_AGENT_STOP = "agent_stop"


@dataclass
class LogEntry:
    """A single telemetry event."""

    timestamp: str
    event: str
    session_id: str | None = None
    user_id: str | None = None
    iteration: int | None = None
    tool_name: str | None = None
    duration_ms: float | None = None
    iterations: int | None = None
    stopped_reason: str | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Drop unset fields so each line only carries what the event has."""
        return {k: v for k, v in asdict(self).items() if v not in (None, {}, [])}


class JSONLLogger:
    """Appends telemetry events to `<log_dir>/<filename>`, rotating by size.

    A file that grows past `max_size_mb` is renamed with a UTC timestamp
    suffix and a fresh one is started.
    """

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "telemetry.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        self.log_dir = Path(log_dir) if log_dir else Path.home() / ".mnemo" / "logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self._default_session_id: str | None = None

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.filename

    def set_session_id(self, session_id: str | None) -> None:
        """Tag later events that don't name a session with this one."""
        self._default_session_id = session_id

    def _rotate(self) -> None:
        path = self.log_path
        if not path.exists() or path.stat().st_size < self.max_size_bytes:
            return
        suffix = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        path.rename(self.log_dir / f"{path.stem}_{suffix}{path.suffix}")

    def log(self, event: str, *, session_id: str | None = None, **fields: Any) -> None:
        """Write one event.

        Keyword arguments naming a LogEntry field fill that field; anything
        else that is set is kept under "extra".
        """
        known = LogEntry.__dataclass_fields__.keys() - {"timestamp", "event", "extra"}
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            session_id=session_id or self._default_session_id,
            extra={k: v for k, v in fields.items() if k not in known and v is not None},
            **{k: v for k, v in fields.items() if k in known},
        )

        self._rotate()
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False, default=str) + "\n")

    def log_model_call(
        self,
        iteration: int,
        *,
        session_id: str | None = None,
        duration_ms: float | None = None,
        tool_requested: str | None = None,
        new_facts: int = 0,
        error: str | None = None,
    ) -> None:
        self.log(
            EVENT_MODEL_CALL,
            session_id=session_id,
            iteration=iteration,
            duration_ms=duration_ms,
            error=error,
            tool_requested=tool_requested,
            new_facts=new_facts,
        )

    def log_tool_call(
        self,
        tool_name: str,
        args: dict[str, Any],
        *,
        session_id: str | None = None,
    ) -> None:
        self.log(EVENT_TOOL_CALL, session_id=session_id, tool_name=tool_name, tool_args=args)

    def log_tool_result(
        self,
        tool_name: str,
        success: bool,
        *,
        session_id: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        self.log(
            EVENT_TOOL_RESULT,
            session_id=session_id,
            tool_name=tool_name,
            duration_ms=duration_ms,
            error=None if success else error,
            success=success,
        )

    def log_agent_stop(
        self,
        reason: str,
        *,
        session_id: str | None = None,
        user_id: str | None = None,
        iterations: int | None = None,
        error: str | None = None,
    ) -> None:
        self.log(
            EVENT_AGENT_STOP,
            session_id=session_id,
            user_id=user_id,
            stopped_reason=reason,
            iterations=iterations,
            error=error,
        )


_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Process-wide telemetry logger, created on first use."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Replace the process-wide logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
