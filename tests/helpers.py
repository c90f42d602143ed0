"""Test data builders."""

from daylog.entries import LogEntry


def make_entry(
    entry_id: str = "a",
    timestamp: str = "2026-03-01T10:00:00Z",
    title: str = "Title",
    content: str = "Some content",
    category: str = "javascript",
    importance: int = 3,
) -> LogEntry:
    return LogEntry(
        id=entry_id,
        title=title,
        category=category,
        content=content,
        importance=importance,
        timestamp=timestamp,
    )
