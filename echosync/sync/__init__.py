"""Sync engine for echosync - paginated WebDAV mirror of the local store."""

from .engine import SyncEngine
from .operations import RemoteCollection
from .pagination import flatten_pages, merge_records, paginate, sort_records
from .state import (
    CollectionStats,
    SyncMode,
    SyncResult,
    SyncState,
    SyncStateManager,
    SyncStatus,
    SyncTask,
)

__all__ = [
    "SyncEngine",
    "RemoteCollection",
    "paginate",
    "flatten_pages",
    "merge_records",
    "sort_records",
    "CollectionStats",
    "SyncMode",
    "SyncResult",
    "SyncState",
    "SyncStateManager",
    "SyncStatus",
    "SyncTask",
]
