"""Journal entry model, display filters and progress statistics."""

from .filters import ALL_CATEGORIES, filter_entries, preview, sort_newest_first
from .models import (
    Category,
    LogEntry,
    category_display_name,
    format_timestamp,
    is_newer,
    motivational_message,
    parse_timestamp,
    understanding_label,
)
from .progress import Progress, compute_progress

__all__ = [
    "ALL_CATEGORIES",
    "Category",
    "LogEntry",
    "Progress",
    "category_display_name",
    "compute_progress",
    "filter_entries",
    "format_timestamp",
    "is_newer",
    "motivational_message",
    "parse_timestamp",
    "preview",
    "sort_newest_first",
    "understanding_label",
]
