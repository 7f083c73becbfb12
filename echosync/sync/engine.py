"""Core sync engine: full sync and incremental push."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from ..config import SyncSettings, WebDAVCredentials
from ..exceptions import ConnectivityError, LocalStoreError
from ..models import Collection, Record
from ..store import LocalStore
from ..utils import DEFAULT_MAX_WORKERS, PAGE_SIZE, now_ms
from ..webdav import WebDAVClient
from .operations import RemoteCollection
from .pagination import merge_records, paginate, sort_records
from .state import (
    CollectionStats,
    SyncMode,
    SyncResult,
    SyncStateManager,
    SyncStatus,
    SyncTask,
)

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps the local store and the WebDAV copy of both collections in sync.

    Two operations are offered:

    - :meth:`full_sync` pulls remote state, merges it with the local set
      (local copy wins on id collision), uploads the result and writes it
      back into the local store. Run it at startup and on demand.
    - :meth:`push_changes` re-uploads the current local set without
      looking at the remote first. Run it after each local mutation,
      usually through :meth:`push_in_background`.

    Neither operation raises on remote or store failures: they return a
    :class:`SyncResult` with status ``FAILED`` and the local data untouched.
    A full sync and a push running at the same time are not mutually
    excluded; whichever writes a remote file last wins.
    """

    def __init__(
        self,
        store: LocalStore,
        settings: SyncSettings,
        client: Optional[WebDAVClient] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        page_size: int = PAGE_SIZE,
        clock: Callable[[], int] = now_ms,
        state_manager: Optional[SyncStateManager] = None,
    ):
        """Initialize sync engine.

        Args:
            store: Local record store
            settings: ``SyncDisabled`` or ``WebDAVCredentials``
            client: WebDAV client (built from the credentials if omitted)
            max_workers: Parallel page transfers per collection
            page_size: Records per remote page
            clock: Returns epoch-ms; stamped as the index ``lastSyncTime``
            state_manager: Optional record of successful syncs
        """
        self.store = store
        self.settings = settings
        if client is None and isinstance(settings, WebDAVCredentials):
            client = WebDAVClient.from_credentials(settings)
        self.client = client
        self.max_workers = max_workers
        self.page_size = page_size
        self.clock = clock
        self.state_manager = state_manager

        self._status = SyncStatus.IDLE
        self._status_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return isinstance(self.settings, WebDAVCredentials) and self.client is not None

    @property
    def status(self) -> SyncStatus:
        """Status of the most recent sync or push."""
        with self._status_lock:
            return self._status

    def _set_status(self, status: SyncStatus) -> None:
        with self._status_lock:
            self._status = status

    def _remote(self, collection: Collection) -> RemoteCollection:
        assert self.client is not None
        return RemoteCollection(self.client, collection, max_workers=self.max_workers)

    def check_connection(self) -> bool:
        """Probe the server; False when sync is disabled."""
        if not self.enabled:
            return False
        assert self.client is not None
        return self.client.probe()

    # =========================
    # Full sync
    # =========================

    def full_sync(self) -> SyncResult:
        """Pull, merge, repaginate and push both collections.

        On success the merged collections are written into the local store
        and returned. On failure the result carries the error and the
        local collections as they were.
        """
        try:
            local = self._load_local()
        except LocalStoreError as e:
            logger.error(f"Sync failed, cannot read local store: {e}")
            self._set_status(SyncStatus.FAILED)
            return SyncResult(status=SyncStatus.FAILED, error=e)

        if not self.enabled:
            logger.debug("Remote sync disabled, using local data")
            self._set_status(SyncStatus.COMPLETED)
            return SyncResult(
                status=SyncStatus.COMPLETED, collections=local, skipped=True
            )

        self._set_status(SyncStatus.IN_PROGRESS)
        logger.info("Starting full sync")
        try:
            remotes = {c: self._remote(c) for c in Collection}
            for remote in remotes.values():
                remote.ensure_directory()

            merged: dict[str, list[Record]] = {}
            stats: dict[str, CollectionStats] = {}
            for collection, remote in remotes.items():
                records, collection_stats = self._sync_collection(
                    remote, local[collection.value]
                )
                merged[collection.value] = records
                stats[collection.value] = collection_stats
                logger.info(
                    f"{collection.value}: {collection_stats.mode.value}, "
                    f"{collection_stats.total_records} record(s), "
                    f"{collection_stats.pages_uploaded} page(s) uploaded"
                )

            self.store.put_collections(merged)
        except (ConnectivityError, LocalStoreError) as e:
            logger.error(f"Sync failed, using local data: {e}")
            self._set_status(SyncStatus.FAILED)
            return SyncResult(status=SyncStatus.FAILED, collections=local, error=e)

        result = SyncResult(
            status=SyncStatus.COMPLETED, collections=merged, stats=stats
        )
        self._set_status(SyncStatus.COMPLETED)
        self._record_success(result, full_sync=True)
        logger.info("Full sync completed")
        return result

    def _sync_collection(
        self, remote: RemoteCollection, local: list[Record]
    ) -> tuple[list[Record], CollectionStats]:
        index = remote.fetch_index()

        if index is None:
            # Never uploaded: the local set becomes the remote set
            pages, new_index = paginate(local, self.page_size, now=self.clock())
            uploaded = remote.upload(pages, new_index)
            stats = CollectionStats(
                mode=SyncMode.BOOTSTRAP,
                total_records=new_index.total_records,
                pages_uploaded=uploaded,
            )
            return sort_records(local), stats

        # Most drift is expected in recent records, so look at page 0 first
        first_page = remote.fetch_page(0) if index.pages else []
        downloaded = 1 if index.pages else 0
        merged = merge_records(local, first_page)

        if len(merged) <= self.page_size:
            # Remote pages beyond 0 are left in place and dropped from the index
            mode = SyncMode.MERGE_FIRST_PAGE
        else:
            remote_all = remote.fetch_all(index)
            downloaded += len(index.pages)
            merged = merge_records(local, remote_all)
            mode = SyncMode.REPAGINATE

        pages, new_index = paginate(merged, self.page_size, now=self.clock())
        uploaded = remote.upload(pages, new_index)
        stats = CollectionStats(
            mode=mode,
            total_records=new_index.total_records,
            pages_uploaded=uploaded,
            pages_downloaded=downloaded,
        )
        return merged, stats

    # =========================
    # Incremental push
    # =========================

    def push_changes(self) -> SyncResult:
        """Upload the current local set of both collections.

        Remote state is not fetched first: the local set is assumed to
        already include everything from the last full sync.
        """
        try:
            local = self._load_local()
        except LocalStoreError as e:
            logger.error(f"Push failed, cannot read local store: {e}")
            self._set_status(SyncStatus.FAILED)
            return SyncResult(status=SyncStatus.FAILED, error=e)

        if not self.enabled:
            self._set_status(SyncStatus.COMPLETED)
            return SyncResult(
                status=SyncStatus.COMPLETED, collections=local, skipped=True
            )

        self._set_status(SyncStatus.IN_PROGRESS)
        stats: dict[str, CollectionStats] = {}
        try:
            for collection in Collection:
                records = local[collection.value]
                pages, index = paginate(records, self.page_size, now=self.clock())
                uploaded = self._remote(collection).upload(pages, index)
                stats[collection.value] = CollectionStats(
                    mode=SyncMode.PUSH,
                    total_records=index.total_records,
                    pages_uploaded=uploaded,
                )
        except ConnectivityError as e:
            logger.error(f"Push failed: {e}")
            self._set_status(SyncStatus.FAILED)
            return SyncResult(
                status=SyncStatus.FAILED, collections=local, stats=stats, error=e
            )

        result = SyncResult(status=SyncStatus.COMPLETED, collections=local, stats=stats)
        self._set_status(SyncStatus.COMPLETED)
        self._record_success(result, full_sync=False)
        logger.debug("Push completed")
        return result

    def push_in_background(self) -> SyncTask:
        """Start :meth:`push_changes` on a background worker.

        Pushes are run one at a time in submission order.
        """
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="echosync-push"
                )
            return SyncTask(self._executor.submit(self.push_changes))

    # =========================
    # Helpers and lifecycle
    # =========================

    def _load_local(self) -> dict[str, list[Record]]:
        return {c.value: self.store.get_all(c) for c in Collection}

    def _record_success(self, result: SyncResult, full_sync: bool) -> None:
        if self.state_manager is None or not isinstance(
            self.settings, WebDAVCredentials
        ):
            return
        self.state_manager.record_success(
            self.settings.base_url, result, full_sync=full_sync
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker and close the WebDAV client.

        Args:
            wait: Wait for pending pushes to finish first
        """
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
        if self.client is not None:
            self.client.close()

    def __enter__(self) -> "SyncEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
