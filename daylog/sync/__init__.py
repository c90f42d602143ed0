"""Offline cache and reconciliation of client and server entries.

The reconciler merges a client's entries into the server collection with a
last-writer-wins rule; the local cache is the client's offline replica.
"""

from .local_cache import LocalCache
from .reconciler import MergeResult, reconcile
from .service import merge_into

__all__ = ["LocalCache", "MergeResult", "merge_into", "reconcile"]
