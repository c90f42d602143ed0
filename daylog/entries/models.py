"""Journal entry model and timestamp handling."""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..errors import InvalidEntryError

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 5
DEFAULT_IMPORTANCE = 3

# Fields an edit may change; id and timestamp never change
EDITABLE_FIELDS = ("title", "category", "content", "importance")


class Category(str, Enum):
    """Known entry categories (course sections)."""

    HTML_CSS = "html-css"
    JAVASCRIPT = "javascript"
    NODE = "node"
    EXPRESS = "express"
    MONGODB = "mongodb"
    PROJECT = "project"
    OTHER = "other"


CATEGORY_DISPLAY_NAMES = {
    Category.HTML_CSS.value: "HTML & CSS",
    Category.JAVASCRIPT.value: "JavaScript",
    Category.NODE.value: "Node.js",
    Category.EXPRESS.value: "Express",
    Category.MONGODB.value: "MongoDB",
    Category.PROJECT.value: "Project",
}

UNDERSTANDING_LABELS = {
    1: "Need more review",
    2: "Basic understanding",
    3: "Good grasp",
    4: "Strong understanding",
    5: "Fully understood",
}

MOTIVATIONAL_MESSAGES = {
    Category.HTML_CSS.value: "Great job learning HTML & CSS! You're building the foundation of the web!",
    Category.JAVASCRIPT.value: "JavaScript entry added! Keep mastering the language of the web!",
    Category.NODE.value: "Node.js progress logged! You're becoming a full-stack developer!",
    Category.EXPRESS.value: "Express.js concepts recorded! Your backend skills are growing!",
    Category.MONGODB.value: "MongoDB knowledge tracked! Database skills are crucial - great work!",
    Category.PROJECT.value: "Project work recorded! Building real applications is the best way to learn!",
}
DEFAULT_MOTIVATIONAL_MESSAGE = "New entry added! Keep up the great work!"


def category_display_name(category: str) -> str:
    """Human-readable label for a category, or the raw value if unknown."""
    return CATEGORY_DISPLAY_NAMES.get(category, category)


def understanding_label(importance: int) -> str:
    """Describe an understanding level (1-5) in words."""
    if importance <= MIN_IMPORTANCE:
        return UNDERSTANDING_LABELS[MIN_IMPORTANCE]
    return UNDERSTANDING_LABELS.get(importance, UNDERSTANDING_LABELS[MAX_IMPORTANCE])


def motivational_message(category: str) -> str:
    return MOTIVATIONAL_MESSAGES.get(category, DEFAULT_MOTIVATIONAL_MESSAGE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 instant into an aware UTC datetime.

    Naive values are taken to be UTC. A trailing ``Z`` is accepted.

    Args:
        value: ISO-8601 string or datetime.

    Returns:
        Timezone-aware datetime in UTC.

    Raises:
        InvalidEntryError: If the value is not a parseable instant.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidEntryError(f"Invalid timestamp: {value!r}") from e
    else:
        raise InvalidEntryError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError) as e:
        # e.g. 0001-01-01T00:30:00+01:00 has no UTC representation
        raise InvalidEntryError(f"Timestamp out of range: {value!r}") from e


def format_timestamp(value: datetime) -> str:
    """Serialize an instant as ISO-8601 with millisecond precision and ``Z``."""
    value = parse_timestamp(value)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_newer(candidate: datetime | str, current: datetime | str) -> bool:
    """Return True if ``candidate`` is a strictly later instant than ``current``.

    This is the only place entry timestamps are compared; equal instants
    are not newer.
    """
    return parse_timestamp(candidate) > parse_timestamp(current)


def generate_id() -> str:
    return uuid.uuid4().hex


@dataclass
class LogEntry:
    """A single journal entry."""

    id: str
    title: str
    category: str
    content: str
    importance: int
    timestamp: datetime

    def __post_init__(self) -> None:
        self.timestamp = parse_timestamp(self.timestamp)

    @classmethod
    def create(
        cls,
        title: str,
        content: str,
        category: str = Category.OTHER.value,
        importance: int = DEFAULT_IMPORTANCE,
        now: datetime | None = None,
        entry_id: str | None = None,
    ) -> "LogEntry":
        """Build a new validated entry with a fresh id and timestamp.

        Args:
            title: Entry title.
            content: Entry body.
            category: Category key; unknown values are kept as given.
            importance: Understanding level, 1-5.
            now: Creation instant. Defaults to the current time.
            entry_id: Explicit id. Defaults to a new random id.

        Returns:
            The new LogEntry.
        """
        entry = cls(
            id=entry_id or generate_id(),
            title=title.strip() if isinstance(title, str) else title,
            category=category,
            content=content.strip() if isinstance(content, str) else content,
            importance=importance,
            timestamp=now or utc_now(),
        )
        entry.validate()
        return entry

    def validate(self) -> None:
        """Check field invariants.

        Raises:
            InvalidEntryError: On the first violated invariant.
        """
        if not isinstance(self.id, str) or not self.id.strip():
            raise InvalidEntryError("Entry id must be a non-empty string")
        if not isinstance(self.title, str) or not self.title.strip():
            raise InvalidEntryError("Entry title must not be empty")
        if not isinstance(self.content, str) or not self.content.strip():
            raise InvalidEntryError("Entry content must not be empty")
        if not isinstance(self.category, str) or not self.category:
            raise InvalidEntryError("Entry category must not be empty")
        if (
            isinstance(self.importance, bool)
            or not isinstance(self.importance, int)
            or not MIN_IMPORTANCE <= self.importance <= MAX_IMPORTANCE
        ):
            raise InvalidEntryError(
                f"Entry importance must be an integer between "
                f"{MIN_IMPORTANCE} and {MAX_IMPORTANCE}, got {self.importance!r}"
            )

    def edited(self, **changes: Any) -> "LogEntry":
        """Return a validated copy with updated fields.

        ``id`` and ``timestamp`` are kept so edits stay identifiable across
        sync cycles.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidEntryError(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        cleaned = {
            key: value.strip() if key in ("title", "content") and isinstance(value, str) else value
            for key, value in changes.items()
            if value is not None
        }
        entry = replace(self, **cleaned)
        entry.validate()
        return entry

    @property
    def category_name(self) -> str:
        return category_display_name(self.category)

    @property
    def understanding(self) -> str:
        return understanding_label(self.importance)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "content": self.content,
            "importance": self.importance,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        """Create a validated entry from its wire representation.

        Raises:
            InvalidEntryError: If a field is missing or invalid.
        """
        if not isinstance(data, dict):
            raise InvalidEntryError("Entry must be a JSON object")

        missing = [
            key
            for key in ("id", "title", "content", "timestamp")
            if data.get(key) in (None, "")
        ]
        if missing:
            raise InvalidEntryError(f"Entry is missing fields: {', '.join(missing)}")

        importance = data.get("importance", DEFAULT_IMPORTANCE)
        if isinstance(importance, str) and importance.strip().isdigit():
            importance = int(importance)

        entry = cls(
            id=str(data["id"]),
            title=data["title"],
            category=data.get("category") or Category.OTHER.value,
            content=data["content"],
            importance=importance,
            timestamp=parse_timestamp(data["timestamp"]),
        )
        entry.validate()
        return entry
