"""Client-side entry cache for offline use.

Holds a replica of the user's entries plus anything written while the
server was unreachable. Entries written offline are flagged as pending until
a sync hands them to the server; everything else mirrors the server and can
always be rebuilt from it.
"""

import json
import logging
import sqlite3
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..entries.models import LogEntry
from ..errors import InvalidEntryError
from ..storage.repository import EntryRepository

logger = logging.getLogger(__name__)

CACHE_SCHEMA = """
-- Key-value store: entry id -> serialized entry, in insertion order
CREATE TABLE IF NOT EXISTS cached_entries (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    payload TEXT NOT NULL,
    pending INTEGER NOT NULL DEFAULT 0,  -- written offline, not yet synced
    cached_at TEXT NOT NULL
);
"""


class LocalCache(EntryRepository):
    """SQLite-backed key-value cache of entries."""

    def __init__(self, db_path: str | Path):
        """Initialize the cache.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(CACHE_SCHEMA)
        self._conn.commit()

        logger.debug(f"LocalCache connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def _rows(self, pending_only: bool = False) -> Iterable[sqlite3.Row]:
        conn = self._ensure_connected()
        query = "SELECT id, payload FROM cached_entries"
        if pending_only:
            query += " WHERE pending = 1"
        return conn.execute(query + " ORDER BY seq ASC")

    def entries(self) -> list[LogEntry]:
        """Cached entries in the order they were first stored.

        Unreadable rows are skipped with a warning.
        """
        result = []
        for row in self._rows():
            try:
                result.append(LogEntry.from_dict(json.loads(row["payload"])))
            except (ValueError, InvalidEntryError) as e:
                logger.warning(f"Ignoring unreadable cached entry {row['id']}: {e}")
        return result

    def raw_entries(self, pending_only: bool = False) -> list[dict[str, Any]]:
        """Cached payloads as stored, including ones that fail validation.

        Args:
            pending_only: Only return entries written offline and not yet synced.
        """
        result = []
        for row in self._rows(pending_only):
            try:
                result.append(json.loads(row["payload"]))
            except ValueError:
                logger.warning(f"Ignoring corrupt cached payload {row['id']}")
        return result

    def read_all(self) -> dict[str, LogEntry]:
        return {entry.id: entry for entry in self.entries()}

    def write_all(self, entries: Mapping[str, LogEntry]) -> None:
        """Replace the cache with a server collection. Nothing stays pending."""
        conn = self._ensure_connected()
        now = datetime.now(timezone.utc).isoformat()
        with conn:
            conn.execute("DELETE FROM cached_entries")
            conn.executemany(
                "INSERT INTO cached_entries (id, payload, pending, cached_at) VALUES (?, ?, 0, ?)",
                [(e.id, json.dumps(e.to_dict()), now) for e in entries.values()],
            )

    def upsert(self, entry: LogEntry, pending: bool = False) -> None:
        """Store an entry.

        Args:
            entry: Entry to insert or replace.
            pending: True if the server has not seen this version yet.
        """
        conn = self._ensure_connected()
        with conn:
            conn.execute(
                """
                INSERT INTO cached_entries (id, payload, pending, cached_at) VALUES (?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    payload = excluded.payload,
                    pending = excluded.pending,
                    cached_at = excluded.cached_at
                """,
                (
                    entry.id,
                    json.dumps(entry.to_dict()),
                    int(pending),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def delete(self, entry_id: str) -> bool:
        conn = self._ensure_connected()
        with conn:
            cursor = conn.execute("DELETE FROM cached_entries WHERE id = ?", (entry_id,))
        return cursor.rowcount > 0

    def count(self) -> int:
        conn = self._ensure_connected()
        return conn.execute("SELECT COUNT(*) FROM cached_entries").fetchone()[0]

    def pending_count(self) -> int:
        conn = self._ensure_connected()
        return conn.execute(
            "SELECT COUNT(*) FROM cached_entries WHERE pending = 1"
        ).fetchone()[0]

    def clear(self) -> None:
        conn = self._ensure_connected()
        with conn:
            conn.execute("DELETE FROM cached_entries")
