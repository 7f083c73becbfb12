"""Local record store backed by SQLite.

Each collection lives in its own table keyed by record id. Records are
stored as JSON text next to their timestamp, which is indexed so reads can
be returned newest first without loading everything into memory.
"""

import contextlib
import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Optional, Union

from .exceptions import LocalStoreError
from .models import Collection, Record, validate_record

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class LocalStore:
    """Durable id-keyed storage for the history and notebook collections.

    A single connection is shared between threads and guarded by a lock,
    so operations on the store are serialized. Every write runs in its own
    transaction: it either commits fully or is rolled back, leaving the
    existing records untouched.

    If the database cannot be opened the error is remembered and every
    operation raises :class:`LocalStoreError` until :meth:`reopen` succeeds.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """Open (and create if needed) the store.

        Args:
            db_path: Database file, or ``":memory:"``. Defaults to
                ``~/.local/share/echosync/echosync.db``.
        """
        if db_path is None:
            db_path = Path.home() / ".local" / "share" / "echosync" / "echosync.db"
        self.db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._open_error: Optional[Exception] = None
        self._lock = threading.RLock()
        try:
            self.reopen()
        except LocalStoreError:
            # Remembered in _open_error; operations fail until reopen()
            pass

    # =========================
    # Lifecycle
    # =========================

    def reopen(self) -> None:
        """(Re)open the database and create missing tables.

        Raises:
            LocalStoreError: If the database cannot be opened
        """
        with self._lock:
            self.close()
            conn: Optional[sqlite3.Connection] = None
            try:
                if self.db_path != MEMORY_DB:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._create_schema(conn)
            except (OSError, sqlite3.Error) as e:
                if conn is not None:
                    conn.close()
                self._open_error = e
                logger.error(f"Failed to open local store at {self.db_path}: {e}")
                raise LocalStoreError(f"Cannot open local store: {e}") from e
            self._conn = conn
            self._open_error = None
            logger.debug(f"Opened local store at {self.db_path}")

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        with conn:
            for collection in Collection:
                table = collection.value
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} ("
                    "id TEXT PRIMARY KEY, "
                    "timestamp INTEGER NOT NULL, "
                    "data TEXT NOT NULL)"
                )
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{table}_timestamp "
                    f"ON {table} (timestamp DESC)"
                )

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction, translating SQLite errors."""
        with self._lock:
            if self._conn is None:
                if self._open_error is not None:
                    raise LocalStoreError(
                        f"Local store is unavailable: {self._open_error}"
                    )
                raise LocalStoreError("Local store is closed")
            conn = self._conn
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                logger.debug(f"Transaction failed, rolling back: {e}")
                conn.rollback()
                raise LocalStoreError(f"Local store operation failed: {e}") from e

    @staticmethod
    def _table(collection: Union[Collection, str]) -> str:
        return Collection(collection).value

    # =========================
    # Writes
    # =========================

    def put(self, collection: Union[Collection, str], record: Record) -> None:
        """Insert or replace one record by id.

        Raises:
            InvalidRecordError: If the record has no id or timestamp
            LocalStoreError: If the write fails
        """
        validate_record(record)
        table = self._table(collection)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {table} (id, timestamp, data) VALUES (?, ?, ?)",
                (record["id"], record["timestamp"], json.dumps(record, ensure_ascii=False)),
            )

    def put_batch(
        self, collection: Union[Collection, str], records: Iterable[Record]
    ) -> int:
        """Upsert many records, committing each one on its own.

        Every record written before a failure stays durable; the first
        failure stops the batch and is raised.

        Returns:
            Number of records written
        """
        written = 0
        for record in records:
            self.put(collection, record)
            written += 1
        logger.debug(f"Stored {written} record(s) in {self._table(collection)}")
        return written

    def put_collections(
        self, collections: Mapping[Union[Collection, str], Iterable[Record]]
    ) -> int:
        """Upsert records into several collections in one transaction.

        Either every record is written or, on failure, none are.

        Args:
            collections: Collection -> records to upsert

        Returns:
            Number of records written

        Raises:
            InvalidRecordError: If any record has no id or timestamp
            LocalStoreError: If the write fails (nothing is kept)
        """
        rows = {
            self._table(collection): [validate_record(r) for r in records]
            for collection, records in collections.items()
        }
        with self._transaction() as conn:
            for table, records in rows.items():
                conn.executemany(
                    f"INSERT OR REPLACE INTO {table} (id, timestamp, data) "
                    "VALUES (?, ?, ?)",
                    [
                        (r["id"], r["timestamp"], json.dumps(r, ensure_ascii=False))
                        for r in records
                    ],
                )
        written = sum(len(records) for records in rows.values())
        logger.debug(f"Stored {written} record(s) in {', '.join(rows)}")
        return written

    def delete(self, collection: Union[Collection, str], record_id: str) -> bool:
        """Delete one record.

        Returns:
            True if a record was removed
        """
        table = self._table(collection)
        with self._transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    # =========================
    # Reads
    # =========================

    def get(self, collection: Union[Collection, str], record_id: str) -> Optional[Record]:
        table = self._table(collection)
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def get_all(self, collection: Union[Collection, str]) -> list[Record]:
        """Return the whole collection, newest first."""
        table = self._table(collection)
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT data FROM {table} ORDER BY timestamp DESC, id ASC"
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def get_paged(
        self, collection: Union[Collection, str], offset: int, limit: int
    ) -> list[Record]:
        """Return ``get_all(collection)[offset:offset + limit]``.

        Raises:
            ValueError: If offset or limit is negative
        """
        if offset < 0 or limit < 0:
            raise ValueError("offset and limit must be non-negative")
        table = self._table(collection)
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT data FROM {table} ORDER BY timestamp DESC, id ASC "
                "LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def count(self, collection: Union[Collection, str]) -> int:
        table = self._table(collection)
        with self._transaction() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return int(row[0])

    def is_gap_saved(
        self, original_context: str, user_segment: str, native_segment: str
    ) -> bool:
        """Check whether the notebook already holds this gap.

        Used before auto-saving the gaps of a new analysis so the same
        mistake on the same sentence is not stored twice.
        """
        for entry in self.get_all(Collection.NOTEBOOK):
            if (
                entry.get("originalContext") == original_context
                and entry.get("userSegment") == user_segment
                and entry.get("nativeSegment") == native_segment
            ):
                return True
        return False
