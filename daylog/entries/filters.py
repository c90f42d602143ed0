"""Filtering and ordering of entries for display."""

from collections.abc import Iterable

from .models import LogEntry

ALL_CATEGORIES = "all"
PREVIEW_LENGTH = 150


def matches(entry: LogEntry, category: str | None = None, search_term: str | None = None) -> bool:
    """Check a single entry against the category and search filters."""
    if category and category != ALL_CATEGORIES and entry.category != category:
        return False

    term = (search_term or "").strip().lower()
    if term and term not in entry.title.lower() and term not in entry.content.lower():
        return False

    return True


def sort_newest_first(entries: Iterable[LogEntry]) -> list[LogEntry]:
    """Sort entries by timestamp, newest first. Ties keep their input order."""
    return sorted(entries, key=lambda e: e.timestamp, reverse=True)


def filter_entries(
    entries: Iterable[LogEntry],
    category: str | None = None,
    search_term: str | None = None,
) -> list[LogEntry]:
    """Select the entries to display.

    Args:
        entries: Full entry collection (any order).
        category: Exact category to keep; None or "all" keeps every entry.
        search_term: Case-insensitive substring of title or content.

    Returns:
        Matching entries sorted newest first.
    """
    return sort_newest_first(
        e for e in entries if matches(e, category=category, search_term=search_term)
    )


def preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    """Shorten content for list views."""
    if len(content) <= limit:
        return content
    return content[: limit - 3] + "..."
