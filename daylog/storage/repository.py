"""Repository interface for entry collections."""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from ..entries.models import LogEntry


class EntryRepository(ABC):
    """A collection of entries keyed by id."""

    @abstractmethod
    def read_all(self) -> dict[str, LogEntry]:
        """Return every entry, keyed by id."""
        pass

    @abstractmethod
    def write_all(self, entries: Mapping[str, LogEntry]) -> None:
        """Replace the whole collection with ``entries``."""
        pass

    @abstractmethod
    def upsert(self, entry: LogEntry) -> None:
        """Insert an entry or replace the one with the same id."""
        pass

    @abstractmethod
    def delete(self, entry_id: str) -> bool:
        """Remove an entry.

        Returns:
            True if an entry was removed.
        """
        pass

    def get(self, entry_id: str) -> LogEntry | None:
        return self.read_all().get(entry_id)

    def count(self) -> int:
        return len(self.read_all())
