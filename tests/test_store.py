"""Tests for the SQLite-backed local store."""

import pytest
from conftest import make_records

from echosync.exceptions import InvalidRecordError, LocalStoreError
from echosync.models import Collection
from echosync.store import LocalStore


class TestLocalStoreWrites:
    """Tests for put, put_batch and delete."""

    def test_put_and_get(self, store):
        record = {"id": "a", "timestamp": 1, "text": "hello"}
        store.put(Collection.HISTORY, record)

        assert store.get(Collection.HISTORY, "a") == record
        assert store.get(Collection.HISTORY, "missing") is None

    def test_put_replaces_same_id(self, store):
        """Test that put is an upsert keyed by id."""
        store.put("history", {"id": "a", "timestamp": 1, "v": 1})
        store.put("history", {"id": "a", "timestamp": 2, "v": 2})

        assert store.count("history") == 1
        assert store.get("history", "a") == {"id": "a", "timestamp": 2, "v": 2}

    def test_put_rejects_invalid_record(self, store):
        with pytest.raises(InvalidRecordError):
            store.put("history", {"id": "a"})
        assert store.count("history") == 0

    def test_put_batch(self, store):
        written = store.put_batch("notebook", make_records(25, prefix="n"))

        assert written == 25
        assert store.count("notebook") == 25

    def test_put_batch_partial_failure_keeps_completed_puts(self, store):
        """Test that records written before a failing one stay durable."""
        records = make_records(3)
        records.insert(2, {"id": "bad"})

        with pytest.raises(InvalidRecordError):
            store.put_batch("history", records)

        assert {r["id"] for r in store.get_all("history")} == {"h1", "h2"}

    def test_put_collections(self, store):
        written = store.put_collections(
            {
                Collection.HISTORY: make_records(3),
                "notebook": make_records(2, prefix="n"),
            }
        )

        assert written == 5
        assert store.count(Collection.HISTORY) == 3
        assert store.count(Collection.NOTEBOOK) == 2

    def test_put_collections_invalid_record_writes_nothing(self, store):
        with pytest.raises(InvalidRecordError):
            store.put_collections(
                {
                    Collection.HISTORY: make_records(2),
                    Collection.NOTEBOOK: [{"id": "bad"}],
                }
            )

        assert store.count(Collection.HISTORY) == 0

    def test_put_collections_rolls_back_on_failure(self, store):
        """Test that a failure in the second collection undoes the first."""
        store.put(Collection.HISTORY, {"id": "old", "timestamp": 1})
        store._conn.execute(
            "CREATE TRIGGER reject_notebook BEFORE INSERT ON notebook "
            "BEGIN SELECT RAISE(ABORT, 'disk full'); END"
        )

        with pytest.raises(LocalStoreError, match="disk full"):
            store.put_collections(
                {
                    Collection.HISTORY: make_records(3),
                    Collection.NOTEBOOK: make_records(1, prefix="n"),
                }
            )

        assert [r["id"] for r in store.get_all(Collection.HISTORY)] == ["old"]
        assert store.count(Collection.NOTEBOOK) == 0

    def test_delete(self, store):
        store.put_batch("history", make_records(3))

        assert store.delete("history", "h2") is True
        assert store.delete("history", "h2") is False
        assert [r["id"] for r in store.get_all("history")] == ["h3", "h1"]

    def test_collections_are_separate(self, store):
        store.put("history", {"id": "same", "timestamp": 1})
        store.put("notebook", {"id": "same", "timestamp": 2})

        store.delete("history", "same")

        assert store.count("history") == 0
        assert store.get("notebook", "same") == {"id": "same", "timestamp": 2}

    def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            store.count("settings")


class TestLocalStoreReads:
    """Tests for get_all, get_paged and count."""

    def test_get_all_sorted_newest_first(self, store):
        records = make_records(10)
        store.put_batch("history", reversed(records))

        timestamps = [r["timestamp"] for r in store.get_all("history")]

        assert timestamps == sorted(timestamps, reverse=True)

    @pytest.mark.parametrize(
        "offset,limit", [(0, 10), (10, 10), (95, 10), (100, 5), (0, 0), (3, 200)]
    )
    def test_get_paged_is_slice_of_get_all(self, store, offset, limit):
        """Test that get_paged matches slicing the sorted collection."""
        store.put_batch("history", make_records(100))

        assert store.get_paged("history", offset, limit) == store.get_all("history")[
            offset : offset + limit
        ]

    def test_get_paged_rejects_negative(self, store):
        with pytest.raises(ValueError):
            store.get_paged("history", -1, 10)

    def test_count_empty(self, store):
        assert store.count(Collection.HISTORY) == 0
        assert store.get_all(Collection.NOTEBOOK) == []

    def test_is_gap_saved(self, store):
        store.put(
            "notebook",
            {
                "id": "n1",
                "timestamp": 1,
                "originalContext": "She go to school.",
                "userSegment": "go",
                "nativeSegment": "goes",
            },
        )

        assert store.is_gap_saved("She go to school.", "go", "goes") is True
        assert store.is_gap_saved("She go to school.", "go", "went") is False
        assert store.is_gap_saved("Other sentence.", "go", "goes") is False


class TestLocalStoreLifecycle:
    """Tests for opening, persistence and initialization failures."""

    def test_records_survive_reopen(self, tmp_path):
        db_path = tmp_path / "data" / "echosync.db"
        with LocalStore(db_path) as first:
            first.put("history", {"id": "a", "timestamp": 1})

        with LocalStore(db_path) as second:
            assert second.get("history", "a") == {"id": "a", "timestamp": 1}

    def test_failed_open_blocks_operations_until_reopen(self, tmp_path):
        """Test that an initialization failure is fatal until reopen succeeds."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = LocalStore(blocker / "echosync.db")

        assert store.is_open is False
        with pytest.raises(LocalStoreError, match="unavailable"):
            store.count("history")
        with pytest.raises(LocalStoreError):
            store.put("history", {"id": "a", "timestamp": 1})

        blocker.unlink()
        store.reopen()

        assert store.is_open is True
        assert store.count("history") == 0
        store.close()

    def test_reopen_raises_on_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        store = LocalStore(blocker / "db.sqlite")

        with pytest.raises(LocalStoreError, match="Cannot open"):
            store.reopen()

    def test_closed_store_raises(self, tmp_path):
        store = LocalStore(tmp_path / "db.sqlite")
        store.close()

        with pytest.raises(LocalStoreError, match="closed"):
            store.get_all("history")
