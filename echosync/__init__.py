"""echosync - local record store with a paginated WebDAV mirror."""

from .config import SyncDisabled, SyncSettings, WebDAVCredentials, load_settings
from .exceptions import (
    AuthenticationError,
    ConfigError,
    ConnectivityError,
    EchoSyncError,
    InvalidRecordError,
    InvalidRemoteDataError,
    LocalStoreError,
    RemoteNetworkError,
    RemoteResponseError,
)
from .models import (
    Collection,
    HistoryRecord,
    NotebookEntry,
    PagedData,
    PageEntry,
    PageIndex,
    validate_record,
)
from .store import LocalStore
from .sync import SyncEngine, SyncResult, SyncStatus, SyncTask
from .webdav import WebDAVClient

__all__ = [
    "LocalStore",
    "WebDAVClient",
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
    "SyncTask",
    "SyncDisabled",
    "SyncSettings",
    "WebDAVCredentials",
    "load_settings",
    "Collection",
    "HistoryRecord",
    "NotebookEntry",
    "PagedData",
    "PageEntry",
    "PageIndex",
    "validate_record",
    "EchoSyncError",
    "ConfigError",
    "LocalStoreError",
    "InvalidRecordError",
    "ConnectivityError",
    "AuthenticationError",
    "RemoteNetworkError",
    "RemoteResponseError",
    "InvalidRemoteDataError",
]
