"""
SQLite message storage for turnstream.
Handles database initialization, migrations, and the message store used
to persist finished turns.
"""
import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional, Union

from ..constants import HISTORY_DB
from ..errors import PersistenceError
from ..utils import generate_id
from .store import MessageStore, TurnRecords


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Conversations
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    created_at REAL,
    updated_at REAL,
    message_count INTEGER DEFAULT 0
);

-- Messages; tool calls, permissions and reasoning live in metadata
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp REAL NOT NULL,
    metadata TEXT,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp);
"""


class Database:
    """
    SQLite database wrapper.

    Uses a connection per thread to ensure thread safety.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None) -> None:
        self._db_path = Path(db_path) if db_path else HISTORY_DB
        self._local = threading.local()
        self._ensure_directory()
        self._initialize_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
            )
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA foreign_keys = ON")
        return self._local.connection

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database transaction."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _initialize_schema(self) -> None:
        """Initialize database schema."""
        with self.transaction() as conn:
            conn.executescript(SCHEMA)

            row = conn.execute(
                "SELECT value FROM schema_info WHERE key = 'version'"
            ).fetchone()

            if row is None:
                conn.execute(
                    "INSERT INTO schema_info (key, value) VALUES (?, ?)",
                    ("version", str(SCHEMA_VERSION))
                )

    def execute(self, query: str, params: tuple = (), commit: bool = True) -> sqlite3.Cursor:
        """
        Execute a SQL query.

        Args:
            query: SQL query string
            params: Query parameters
            commit: Whether to commit transaction

        Returns:
            Cursor with results
        """
        conn = self._get_connection()
        cursor = conn.execute(query, params)
        if commit:
            conn.commit()
        return cursor

    def fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return self.execute(query, params, commit=False).fetchone()

    def fetch_all(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self.execute(query, params, commit=False).fetchall()

    def close(self) -> None:
        """Close the thread-local connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None


class SQLiteMessageStore(MessageStore):
    """MessageStore backed by the local SQLite history database."""

    def __init__(self, database: Optional[Database] = None) -> None:
        self._db = database or get_database()

    @property
    def database(self) -> Database:
        return self._db

    def save_assistant_message(
        self,
        conversation_id: Optional[str],
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        return self._save("assistant", conversation_id, content, metadata)

    def save_user_message(self, conversation_id: Optional[str], content: str) -> Optional[str]:
        return self._save("user", conversation_id, content, None)

    def _save(
        self,
        role: str,
        conversation_id: Optional[str],
        content: str,
        metadata: Optional[dict[str, Any]],
    ) -> str:
        conversation_id = conversation_id or generate_id("conv")
        message_id = generate_id("msg")
        now = time.time()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    "INSERT INTO conversations (id, created_at, updated_at, message_count) "
                    "VALUES (?, ?, ?, 0) ON CONFLICT(id) DO NOTHING",
                    (conversation_id, now, now),
                )
                conn.execute(
                    "INSERT INTO messages (id, conversation_id, role, content, timestamp, metadata) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        message_id,
                        conversation_id,
                        role,
                        content,
                        now,
                        json.dumps(metadata or {}, default=str),
                    ),
                )
                conn.execute(
                    "UPDATE conversations SET updated_at = ?, "
                    "message_count = message_count + 1 WHERE id = ?",
                    (now, conversation_id),
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to save {role} message: {e}")
            raise PersistenceError(f"Failed to save {role} message: {e}") from e
        return message_id

    def load_turn_records(self, conversation_id: Optional[str], message_id: str) -> TurnRecords:
        try:
            row = self._db.fetch_one(
                "SELECT metadata FROM messages WHERE id = ?", (message_id,)
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load message {message_id}: {e}") from e
        if row is None or not row["metadata"]:
            return TurnRecords()

        metadata = json.loads(row["metadata"])
        return TurnRecords(
            tool_calls=list(metadata.get("tool_calls") or []),
            permissions=list(metadata.get("permissions") or []),
        )

    def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        """Get all messages of a conversation in order."""
        rows = self._db.fetch_all(
            "SELECT id, role, content, timestamp, metadata FROM messages "
            "WHERE conversation_id = ? ORDER BY timestamp, rowid",
            (conversation_id,),
        )
        return [
            {
                "id": row["id"],
                "role": row["role"],
                "content": row["content"],
                "timestamp": row["timestamp"],
                "metadata": json.loads(row["metadata"]) if row["metadata"] else {},
            }
            for row in rows
        ]

    def update_permission_status(self, message_id: str, permission_id: str, status: str) -> bool:
        """Record a permission decision made after the turn was saved."""
        try:
            with self._db.transaction() as conn:
                row = conn.execute(
                    "SELECT metadata FROM messages WHERE id = ?", (message_id,)
                ).fetchone()
                if row is None:
                    return False
                metadata = json.loads(row["metadata"] or "{}")
                changed = False
                for permission in metadata.get("permissions") or []:
                    if permission.get("permission_id") == permission_id:
                        permission["status"] = status
                        changed = True
                if changed:
                    conn.execute(
                        "UPDATE messages SET metadata = ? WHERE id = ?",
                        (json.dumps(metadata, default=str), message_id),
                    )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update permission {permission_id}: {e}") from e
        return changed


_database: Optional[Database] = None


def get_database(db_path: Optional[Union[str, Path]] = None) -> Database:
    """Get the global database instance."""
    global _database
    if _database is None:
        _database = Database(db_path)
    return _database
