"""Last-writer-wins merge of client entries into the server collection.

The merge is a pure function of its two inputs: it performs no I/O, never
reads the clock, and never mutates its arguments. Storage and transport are
the caller's concern.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..entries.models import LogEntry, is_newer
from ..errors import InvalidEntryError

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of a reconciliation."""

    entries: dict[str, LogEntry]
    added: int = 0
    updated: int = 0
    skipped: int = 0
    added_ids: list[str] = field(default_factory=list)
    updated_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)

    @property
    def message(self) -> str:
        return f"Synced {self.added} new and {self.updated} updated logs"

    def to_response(self) -> dict[str, Any]:
        """Body of the sync endpoint's response."""
        return {
            "success": True,
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "message": self.message,
        }


def _coerce(candidate: LogEntry | Mapping[str, Any]) -> LogEntry | None:
    """Turn a merge candidate into a LogEntry, or None if it is malformed."""
    if isinstance(candidate, LogEntry):
        return candidate if candidate.id else None

    if not isinstance(candidate, Mapping) or not candidate.get("id"):
        return None

    try:
        return LogEntry.from_dict(dict(candidate))
    except InvalidEntryError as e:
        logger.debug(f"Skipping malformed entry {candidate.get('id')!r}: {e}")
        return None


def reconcile(
    server_entries: Mapping[str, LogEntry],
    client_entries: Iterable[LogEntry | Mapping[str, Any]],
) -> MergeResult:
    """Merge client entries into the authoritative server collection.

    For each client entry, in order:
    - unknown id: inserted as-is and counted as added;
    - known id: replaces the server entry only when its timestamp is a
      strictly later instant (ties and older versions keep the server copy);
    - no id or unparseable: skipped.

    Server-only entries are carried over untouched.

    Args:
        server_entries: Mapping of id to entry, the current server state.
        client_entries: Candidate entries, as LogEntry objects or wire dicts.

    Returns:
        MergeResult holding a new merged mapping and the counters.
    """
    merged = dict(server_entries)
    result = MergeResult(entries=merged)

    for candidate in client_entries:
        entry = _coerce(candidate)
        if entry is None:
            result.skipped += 1
            continue

        existing = merged.get(entry.id)
        if existing is None:
            merged[entry.id] = entry
            result.added += 1
            result.added_ids.append(entry.id)
        elif is_newer(entry.timestamp, existing.timestamp):
            merged[entry.id] = entry
            result.updated += 1
            # A repeated id within one batch is reported once
            if entry.id not in result.updated_ids and entry.id not in result.added_ids:
                result.updated_ids.append(entry.id)

    if result.skipped:
        logger.debug(f"Skipped {result.skipped} malformed entries during merge")

    return result
