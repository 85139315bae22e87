"""SQLite storage for sessions, transcripts, memory facts and step traces."""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .models import (
    ROLES,
    SOURCES,
    ChatMessage,
    LogStep,
    MemoryFact,
    Session,
    TodoItem,
)

TODO_LIST_LIMIT = 200

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    user_id     TEXT NOT NULL,
    session_id  TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    PRIMARY KEY (user_id, session_id)
);

CREATE TABLE IF NOT EXISTS messages (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT NOT NULL,
    session_id  TEXT NOT NULL,
    role        TEXT NOT NULL,
    content     TEXT NOT NULL,
    timestamp   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS facts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT NOT NULL,
    session_id  TEXT NOT NULL,
    text        TEXT NOT NULL,
    source      TEXT NOT NULL DEFAULT 'agent',
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS steps (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT NOT NULL,
    session_id      TEXT NOT NULL,
    timestamp       TEXT NOT NULL,
    user_message    TEXT,
    reasoning       TEXT,
    tool_calls      TEXT,
    tool_results    TEXT,
    final_response  TEXT
);

CREATE TABLE IF NOT EXISTS todos (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    session_id  TEXT,
    text        TEXT NOT NULL,
    completed   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(user_id, session_id);
CREATE INDEX IF NOT EXISTS idx_facts_session ON facts(user_id, session_id);
CREATE INDEX IF NOT EXISTS idx_steps_session ON steps(user_id, session_id);
CREATE INDEX IF NOT EXISTS idx_todos_session ON todos(user_id, session_id);
"""


def utc_now() -> str:
    """Current UTC time as an ISO string with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def _load(value: str | None) -> Any:
    if value is None:
        return None
    return json.loads(value)


class ConversationStore:
    """Persistent storage keyed by (user_id, session_id) using SQLite.

    Every collection is append-only. Reads are ordered by timestamp with the
    row id breaking ties, so records come back in insertion order. Multi-row
    writes run in a single transaction.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the tables if they don't exist."""
        conn = self._get_connection()
        conn.executescript(SCHEMA)
        conn.commit()

    # Sessions

    def ensure_session(self, user_id: str, session_id: str) -> Session:
        """Get the session, creating it on first interaction."""
        conn = self._get_connection()
        with conn:
            conn.execute(
                """
                INSERT INTO sessions (user_id, session_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id, session_id) DO NOTHING
                """,
                (user_id, session_id, utc_now()),
            )
        session = self.get_session(user_id, session_id)
        if session is None:
            raise RuntimeError(f"Session {session_id} was not stored for user {user_id}")
        return session

    def get_session(self, user_id: str, session_id: str) -> Session | None:
        """Get a session, or None if it was never created."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT user_id, session_id, created_at FROM sessions "
            "WHERE user_id = ? AND session_id = ?",
            (user_id, session_id),
        ).fetchone()
        if row is None:
            return None
        return Session(
            user_id=row["user_id"],
            session_id=row["session_id"],
            created_at=row["created_at"],
        )

    def delete_session(self, user_id: str, session_id: str) -> None:
        """Delete a session with all of its messages, facts and steps.

        The deletes run in one transaction: either everything goes or
        nothing does.
        """
        conn = self._get_connection()
        with conn:
            for table in ("messages", "facts", "steps", "sessions"):
                conn.execute(
                    f"DELETE FROM {table} WHERE user_id = ? AND session_id = ?",
                    (user_id, session_id),
                )

    # Messages

    def add_message(
        self, user_id: str, session_id: str, role: str, content: str
    ) -> ChatMessage:
        """Append a message to the session transcript.

        Raises:
            ValueError: If role is not 'user' or 'assistant'.
        """
        if role not in ROLES:
            raise ValueError(f"Invalid message role: {role}")

        conn = self._get_connection()
        timestamp = utc_now()
        with conn:
            cursor = conn.execute(
                "INSERT INTO messages (user_id, session_id, role, content, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                (user_id, session_id, role, content, timestamp),
            )
        return ChatMessage(
            id=cursor.lastrowid, role=role, content=content, timestamp=timestamp
        )

    def list_messages(self, user_id: str, session_id: str) -> list[ChatMessage]:
        """Get the session transcript, oldest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id, role, content, timestamp FROM messages "
            "WHERE user_id = ? AND session_id = ? ORDER BY timestamp, id",
            (user_id, session_id),
        )
        return [
            ChatMessage(
                id=row["id"],
                role=row["role"],
                content=row["content"],
                timestamp=row["timestamp"],
            )
            for row in cursor.fetchall()
        ]

    # Facts

    def add_facts(
        self,
        user_id: str,
        session_id: str,
        texts: Iterable[str],
        source: str,
    ) -> list[MemoryFact]:
        """Save several facts as one atomic batch.

        Blank texts are skipped.

        Returns:
            The saved facts with their ids, in input order.
        """
        if source not in SOURCES:
            raise ValueError(f"Invalid fact source: {source}")

        conn = self._get_connection()
        saved: list[MemoryFact] = []
        with conn:
            for text in texts:
                text = text.strip()
                if not text:
                    continue
                created_at = utc_now()
                cursor = conn.execute(
                    "INSERT INTO facts (user_id, session_id, text, source, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (user_id, session_id, text, source, created_at),
                )
                saved.append(
                    MemoryFact(
                        id=cursor.lastrowid,
                        text=text,
                        source=source,
                        created_at=created_at,
                    )
                )
        return saved

    def list_facts(self, user_id: str, session_id: str) -> list[MemoryFact]:
        """Get all facts of a session in creation order."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id, text, source, created_at FROM facts "
            "WHERE user_id = ? AND session_id = ? ORDER BY created_at, id",
            (user_id, session_id),
        )
        return [
            MemoryFact(
                id=row["id"],
                text=row["text"],
                source=row["source"],
                created_at=row["created_at"],
            )
            for row in cursor.fetchall()
        ]

    # Steps

    def add_step(self, user_id: str, session_id: str, step: LogStep) -> LogStep:
        """Append a step record, timestamped now."""
        conn = self._get_connection()
        timestamp = utc_now()
        with conn:
            cursor = conn.execute(
                """
                INSERT INTO steps (
                    user_id, session_id, timestamp, user_message, reasoning,
                    tool_calls, tool_results, final_response
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    session_id,
                    timestamp,
                    step.user_message,
                    step.reasoning,
                    _dump(step.tool_calls),
                    _dump(step.tool_results),
                    step.final_response,
                ),
            )
        return LogStep(
            id=cursor.lastrowid,
            timestamp=timestamp,
            user_message=step.user_message,
            reasoning=step.reasoning,
            tool_calls=step.tool_calls,
            tool_results=step.tool_results,
            final_response=step.final_response,
        )

    def list_steps(self, user_id: str, session_id: str) -> list[LogStep]:
        """Get the step trace of a session, oldest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT * FROM steps WHERE user_id = ? AND session_id = ? "
            "ORDER BY timestamp, id",
            (user_id, session_id),
        )
        return [
            LogStep(
                id=row["id"],
                timestamp=row["timestamp"],
                user_message=row["user_message"],
                reasoning=row["reasoning"],
                tool_calls=_load(row["tool_calls"]),
                tool_results=_load(row["tool_results"]),
                final_response=row["final_response"],
            )
            for row in cursor.fetchall()
        ]

    # To-do items

    def add_todo(self, user_id: str, session_id: str | None, text: str) -> TodoItem:
        """Add an open to-do item."""
        conn = self._get_connection()
        item = TodoItem(id=uuid.uuid4().hex[:12], text=text, created_at=utc_now())
        with conn:
            conn.execute(
                "INSERT INTO todos (id, user_id, session_id, text, completed, created_at) "
                "VALUES (?, ?, ?, ?, 0, ?)",
                (item.id, user_id, session_id, item.text, item.created_at),
            )
        return item

    def list_todos(self, user_id: str, session_id: str | None = None) -> list[TodoItem]:
        """Get open to-do items, newest first.

        Args:
            user_id: Owner of the items.
            session_id: If given, only items of that session.
        """
        conn = self._get_connection()
        query = "SELECT id, text, completed, created_at FROM todos WHERE user_id = ? AND completed = 0"
        params: list[Any] = [user_id]
        if session_id:
            query += " AND session_id = ?"
            params.append(session_id)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(TODO_LIST_LIMIT)

        cursor = conn.execute(query, params)
        return [
            TodoItem(
                id=row["id"],
                text=row["text"],
                completed=bool(row["completed"]),
                created_at=row["created_at"],
            )
            for row in cursor.fetchall()
        ]

    def complete_todos(self, user_id: str, ids: list[str]) -> list[str]:
        """Mark several to-do items as completed in one batch.

        Raises:
            KeyError: If any id does not exist. Nothing is committed then.
        """
        conn = self._get_connection()
        with conn:
            for todo_id in ids:
                cursor = conn.execute(
                    "UPDATE todos SET completed = 1 WHERE id = ? AND user_id = ?",
                    (todo_id, user_id),
                )
                if cursor.rowcount == 0:
                    raise KeyError(todo_id)
        return list(ids)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
