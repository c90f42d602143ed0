"""Course progress statistics."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, tzinfo

from .models import LogEntry

DEFAULT_TARGET_DAYS = 65


@dataclass
class Progress:
    """Days logged against the configured target."""

    days_logged: int
    target_days: int
    percentage: int
    total_entries: int

    @property
    def days_label(self) -> str:
        return f"{self.days_logged} {'day' if self.days_logged == 1 else 'days'}"

    def to_dict(self) -> dict:
        return {
            "days_logged": self.days_logged,
            "days_label": self.days_label,
            "target_days": self.target_days,
            "percentage": self.percentage,
            "total_entries": self.total_entries,
        }


def local_day(entry: LogEntry, tz: tzinfo | None = None) -> date:
    """Calendar date of an entry in ``tz`` (system local zone if None)."""
    return entry.timestamp.astimezone(tz).date()


def compute_progress(
    entries: Iterable[LogEntry],
    target_days: int = DEFAULT_TARGET_DAYS,
    tz: tzinfo | None = None,
) -> Progress:
    """Count distinct logged days and express them as a capped percentage.

    Args:
        entries: Entries to aggregate.
        target_days: Number of days that counts as 100%.
        tz: Timezone used to assign entries to calendar days.

    Returns:
        Progress with ``percentage = min(100, round(100 * days / target))``,
        rounding halves up.
    """
    if target_days <= 0:
        raise ValueError(f"target_days must be positive, got {target_days}")

    days = set()
    total = 0
    for entry in entries:
        days.add(local_day(entry, tz))
        total += 1

    percentage = min(100, math.floor(100 * len(days) / target_days + 0.5))
    return Progress(
        days_logged=len(days),
        target_days=target_days,
        percentage=percentage,
        total_entries=total,
    )
