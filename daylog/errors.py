"""Exception types shared across daylog."""


class DaylogError(Exception):
    """Base class for all daylog errors."""


class InvalidEntryError(DaylogError):
    """A log entry violates one of its field invariants."""


class EntryNotFoundError(DaylogError):
    """No entry with the requested id exists in the collection."""

    def __init__(self, entry_id: str):
        super().__init__(f"Log entry not found: {entry_id}")
        self.entry_id = entry_id


class AuthenticationError(DaylogError):
    """Credentials were rejected or no session is present."""


class NotificationError(DaylogError):
    """An email notification could not be delivered."""


class ConfigError(DaylogError):
    """Configuration file is unreadable or malformed."""
