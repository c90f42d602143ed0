"""SQLite storage for journal entries and user accounts."""

import logging
import sqlite3
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..entries.models import LogEntry, format_timestamp
from .repository import EntryRepository

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

SCHEMA = """
-- Journal entries, one collection per user
CREATE TABLE IF NOT EXISTS entries (
    owner TEXT NOT NULL,
    id TEXT NOT NULL,
    title TEXT NOT NULL,
    category TEXT NOT NULL,
    content TEXT NOT NULL,
    importance INTEGER NOT NULL CHECK (importance BETWEEN 1 AND 5),
    timestamp TEXT NOT NULL,
    PRIMARY KEY (owner, id)
);

CREATE INDEX IF NOT EXISTS idx_entries_owner_ts ON entries(owner, timestamp);

-- Accounts: bcrypt password hashes
CREATE TABLE IF NOT EXISTS users (
    username TEXT PRIMARY KEY,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


def _row_to_entry(row: sqlite3.Row) -> LogEntry:
    return LogEntry(
        id=row["id"],
        title=row["title"],
        category=row["category"],
        content=row["content"],
        importance=row["importance"],
        timestamp=row["timestamp"],
    )


def _entry_params(owner: str, entry: LogEntry) -> tuple:
    return (
        owner,
        entry.id,
        entry.title,
        entry.category,
        entry.content,
        entry.importance,
        format_timestamp(entry.timestamp),
    )


class JournalDatabase:
    """SQLite database holding every user's entries and credentials."""

    def __init__(self, db_path: str | Path):
        """Initialize the database wrapper.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if str(db_path) == MEMORY_PATH else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._in_memory = str(db_path) == MEMORY_PATH

    @property
    def storage_type(self) -> str:
        return "in-memory" if self._in_memory else "file-based"

    def connect(self) -> None:
        """Open the database and create the schema.

        If the file cannot be opened, an in-memory database is used instead
        so the server keeps working; its contents are lost on exit.
        """
        if self._in_memory:
            self._conn = sqlite3.connect(MEMORY_PATH, check_same_thread=False)
        else:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                self._conn.executescript(SCHEMA)
            except (OSError, sqlite3.Error) as e:
                logger.error(f"Cannot open {self.db_path}: {e}")
                logger.warning("Switched to in-memory storage due to file access errors")
                self._in_memory = True
                self._conn = sqlite3.connect(MEMORY_PATH, check_same_thread=False)

        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"JournalDatabase connected ({self.storage_type}) at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("JournalDatabase connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def entries_for(self, owner: str) -> "SQLiteEntryRepository":
        """Repository over one user's entries."""
        return SQLiteEntryRepository(self, owner)

    # ==================== User Operations ====================

    def create_user(self, username: str, password_hash: str) -> bool:
        """Store a new account.

        Returns:
            False if the username is already taken.
        """
        conn = self._ensure_connected()
        try:
            conn.execute(
                "INSERT INTO users (username, password_hash, created_at) VALUES (?, ?, ?)",
                (username, password_hash, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            return False

        logger.info(f"Created user {username}")
        return True

    def get_password_hash(self, username: str) -> str | None:
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT password_hash FROM users WHERE username = ?", (username,)
        ).fetchone()
        return row["password_hash"] if row else None

    def list_users(self) -> list[str]:
        conn = self._ensure_connected()
        return [row["username"] for row in conn.execute("SELECT username FROM users ORDER BY username")]

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with user and entry counts.
        """
        conn = self._ensure_connected()

        stats: dict[str, Any] = {"storage_type": self.storage_type}
        stats["user_count"] = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        stats["entry_count"] = conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]

        if not self._in_memory and self.db_path.exists():
            stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)

        return stats


class SQLiteEntryRepository(EntryRepository):
    """One user's entries inside a JournalDatabase."""

    def __init__(self, database: JournalDatabase, owner: str):
        self._db = database
        self.owner = owner

    def read_all(self) -> dict[str, LogEntry]:
        conn = self._db._ensure_connected()
        cursor = conn.execute(
            """
            SELECT id, title, category, content, importance, timestamp
            FROM entries
            WHERE owner = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            (self.owner,),
        )
        return {row["id"]: _row_to_entry(row) for row in cursor}

    def write_all(self, entries: Mapping[str, LogEntry]) -> None:
        conn = self._db._ensure_connected()
        with conn:
            conn.execute("DELETE FROM entries WHERE owner = ?", (self.owner,))
            conn.executemany(
                """
                INSERT INTO entries (owner, id, title, category, content, importance, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [_entry_params(self.owner, e) for e in entries.values()],
            )
        logger.debug(f"Wrote {len(entries)} entries for {self.owner}")

    def upsert(self, entry: LogEntry) -> None:
        conn = self._db._ensure_connected()
        with conn:
            conn.execute(
                """
                INSERT INTO entries (owner, id, title, category, content, importance, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (owner, id) DO UPDATE SET
                    title = excluded.title,
                    category = excluded.category,
                    content = excluded.content,
                    importance = excluded.importance,
                    timestamp = excluded.timestamp
                """,
                _entry_params(self.owner, entry),
            )

    def delete(self, entry_id: str) -> bool:
        conn = self._db._ensure_connected()
        with conn:
            cursor = conn.execute(
                "DELETE FROM entries WHERE owner = ? AND id = ?", (self.owner, entry_id)
            )
        return cursor.rowcount > 0

    def get(self, entry_id: str) -> LogEntry | None:
        conn = self._db._ensure_connected()
        row = conn.execute(
            """
            SELECT id, title, category, content, importance, timestamp
            FROM entries WHERE owner = ? AND id = ?
            """,
            (self.owner, entry_id),
        ).fetchone()
        return _row_to_entry(row) if row else None

    def count(self) -> int:
        conn = self._db._ensure_connected()
        return conn.execute(
            "SELECT COUNT(*) FROM entries WHERE owner = ?", (self.owner,)
        ).fetchone()[0]
