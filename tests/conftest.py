"""Shared fixtures."""

import pytest

from daylog.storage import JournalDatabase
from daylog.sync import LocalCache


@pytest.fixture
def db():
    """Create an in-memory JournalDatabase."""
    database = JournalDatabase(":memory:")
    database.connect()
    yield database
    database.close()


@pytest.fixture
def cache():
    """Create an in-memory LocalCache."""
    local = LocalCache(":memory:")
    local.connect()
    yield local
    local.close()
