"""Persistent storage for journal entries and accounts."""

from .repository import EntryRepository
from .sqlite_store import JournalDatabase, SQLiteEntryRepository

__all__ = ["EntryRepository", "JournalDatabase", "SQLiteEntryRepository"]
