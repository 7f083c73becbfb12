"""Sync status, results and the record of past syncs.

A sync or push moves ``IDLE -> IN_PROGRESS -> COMPLETED | FAILED``.
Results carry the collections as they stand after the operation plus
per-collection statistics. :class:`SyncStateManager` remembers when the
last full sync and push succeeded for each server, which is what
``echosync status`` reports.
"""

import hashlib
import json
import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..models import Record

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """State of one sync or push invocation."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncMode(str, Enum):
    """Which path a full sync took for a collection."""

    BOOTSTRAP = "bootstrap"
    """No remote index: the local set was uploaded as is"""

    MERGE_FIRST_PAGE = "merge_first_page"
    """Merged with remote page 0 and fit on a single page"""

    REPAGINATE = "repaginate"
    """Merged with every remote page and repaginated"""

    PUSH = "push"
    """Incremental push of the local set"""


@dataclass
class CollectionStats:
    """What happened to one collection during a sync or push."""

    mode: SyncMode
    total_records: int = 0
    pages_uploaded: int = 0
    pages_downloaded: int = 0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "total_records": self.total_records,
            "pages_uploaded": self.pages_uploaded,
            "pages_downloaded": self.pages_downloaded,
        }


@dataclass
class SyncResult:
    """Outcome of a full sync or incremental push."""

    status: SyncStatus
    collections: dict[str, list[Record]] = field(default_factory=dict)
    """Collection name -> records after the operation (newest first)"""

    stats: dict[str, CollectionStats] = field(default_factory=dict)
    error: Optional[Exception] = None
    skipped: bool = False
    """True when remote sync is disabled and nothing was sent"""

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "skipped": self.skipped,
            "error": str(self.error) if self.error else None,
            "collections": {
                name: stats.to_dict() for name, stats in self.stats.items()
            },
        }


class SyncTask:
    """Handle on a push running in the background.

    The originating mutation never waits on it, but callers (and tests)
    can check :attr:`status` or block on :meth:`result`.
    """

    def __init__(self, future: "Future[SyncResult]"):
        self._future = future

    @property
    def future(self) -> "Future[SyncResult]":
        return self._future

    @property
    def status(self) -> SyncStatus:
        if not self._future.done():
            return SyncStatus.IN_PROGRESS
        if self._future.cancelled() or self._future.exception() is not None:
            return SyncStatus.FAILED
        return self._future.result().status

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> SyncResult:
        """Wait for the push to finish.

        Unexpected errors raised inside the push are re-raised here.
        """
        return self._future.result(timeout=timeout)


@dataclass
class SyncState:
    """Last successful sync times for one server."""

    server: str
    last_full_sync: Optional[str] = None
    """ISO timestamp of the last successful full sync"""

    last_push: Optional[str] = None
    """ISO timestamp of the last successful push"""

    record_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "server": self.server,
            "last_full_sync": self.last_full_sync,
            "last_push": self.last_push,
            "record_counts": dict(sorted(self.record_counts.items())),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncState":
        return cls(
            server=data.get("server", ""),
            last_full_sync=data.get("last_full_sync"),
            last_push=data.get("last_push"),
            record_counts=dict(data.get("record_counts", {})),
        )


class SyncStateManager:
    """Persists :class:`SyncState` per server as small JSON files.

    Failing to read or write the state only logs a warning: it is
    informational and never blocks a sync.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize state manager.

        Args:
            state_dir: Directory to store state files. Defaults to
                      ~/.config/echosync/sync_state/
        """
        if state_dir is None:
            state_dir = Path.home() / ".config" / "echosync" / "sync_state"
        self.state_dir = state_dir

    def _get_state_file(self, server: str) -> Path:
        key = hashlib.sha256(server.encode()).hexdigest()[:16]
        return self.state_dir / f"{key}.json"

    def load_state(self, server: str) -> Optional[SyncState]:
        """Load the sync state for a server, or None if never synced."""
        state_file = self._get_state_file(server)
        if not state_file.exists():
            logger.debug(f"No sync state found at {state_file}")
            return None
        try:
            with open(state_file, encoding="utf-8") as f:
                return SyncState.from_dict(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load sync state: {e}")
            return None

    def record_success(self, server: str, result: SyncResult, full_sync: bool) -> None:
        """Remember a successful sync or push."""
        state = self.load_state(server) or SyncState(server=server)
        now = datetime.now().isoformat()
        if full_sync:
            state.last_full_sync = now
        else:
            state.last_push = now
        for name, stats in result.stats.items():
            state.record_counts[name] = stats.total_records

        state_file = self._get_state_file(server)
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(state_file, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            logger.debug(f"Saved sync state to {state_file}")
        except OSError as e:
            logger.warning(f"Failed to save sync state: {e}")
