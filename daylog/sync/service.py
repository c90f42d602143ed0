"""Apply a reconciliation to a stored collection."""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..entries.models import LogEntry
from ..storage.repository import EntryRepository
from .reconciler import MergeResult, reconcile

logger = logging.getLogger(__name__)


def merge_into(
    repository: EntryRepository,
    client_entries: Iterable[LogEntry | Mapping[str, Any]],
) -> MergeResult:
    """Reconcile ``client_entries`` into a repository and persist the result.

    Args:
        repository: Authoritative collection.
        client_entries: Candidates to merge in.

    Returns:
        The MergeResult. The repository is only rewritten if something changed.
    """
    result = reconcile(repository.read_all(), client_entries)
    if result.changed:
        repository.write_all(result.entries)

    logger.info(
        f"{result.message}"
        + (f", skipped {result.skipped} malformed" if result.skipped else "")
    )
    return result
