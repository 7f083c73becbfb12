"""Tests for pagination and merging of record sets."""

import math
import random

import pytest
from conftest import make_records

from echosync.sync.pagination import flatten_pages, merge_records, paginate, sort_records


class TestPaginate:
    """Tests for paginate()."""

    @pytest.mark.parametrize("count", [0, 1, 99, 100, 101, 150, 200, 1001])
    def test_page_counts(self, count):
        """Test totalPages and record counts for various set sizes."""
        pages, index = paginate(make_records(count), now=1)

        assert index.total_pages == math.ceil(count / 100)
        assert len(pages) == index.total_pages
        assert index.total_records == count
        assert sum(p.record_count for p in index.pages) == count
        assert [p.page_number for p in pages] == list(range(len(pages)))

    def test_empty_set_has_no_pages(self):
        """Test that an empty set yields an index with zero pages."""
        pages, index = paginate([], now=42)

        assert pages == []
        assert index.total_pages == 0
        assert index.pages == []
        assert index.last_sync_time == 42

    def test_page_zero_holds_newest_records(self):
        """Test that page 0 holds the 100 newest records."""
        records = make_records(150)
        random.Random(7).shuffle(records)

        pages, _ = paginate(records, now=1)

        assert [r["id"] for r in pages[0].records] == [
            f"h{i}" for i in range(150, 50, -1)
        ]
        assert [r["id"] for r in pages[1].records] == [f"h{i}" for i in range(50, 0, -1)]

    def test_boundary_at_exactly_one_page(self):
        """Test the page boundary with 100 and 101 records."""
        pages, index = paginate(make_records(100), now=1)
        assert index.total_pages == 1
        assert len(pages[0].records) == 100

        pages, index = paginate(make_records(101), now=1)
        assert index.total_pages == 2
        assert min(r["timestamp"] for r in pages[0].records) >= max(
            r["timestamp"] for r in pages[1].records
        )
        assert pages[1].records == [make_records(1)[0]]

    def test_concatenated_pages_sorted_descending(self):
        """Test that flattening all pages yields a timestamp-descending list."""
        records = make_records(345)
        random.Random(3).shuffle(records)

        pages, _ = paginate(records, now=1)
        flat = flatten_pages(pages)
        timestamps = [r["timestamp"] for r in flat]

        assert timestamps == sorted(timestamps, reverse=True)

    @pytest.mark.parametrize("count", [0, 1, 100, 2500])
    def test_round_trip(self, count):
        """Test that paginate then flatten reconstructs the input set."""
        records = make_records(count)
        pages, _ = paginate(records, now=1)

        flat = flatten_pages(pages)

        assert {r["id"]: r for r in flat} == {r["id"]: r for r in records}
        assert len(flat) == count

    def test_index_entries_describe_pages(self):
        """Test that index entries record counts and newest timestamp."""
        records = make_records(130)
        pages, index = paginate(records, now=99)

        assert [p.to_dict() for p in index.pages] == [
            {"pageNumber": 0, "recordCount": 100, "lastModified": 1_000_130},
            {"pageNumber": 1, "recordCount": 30, "lastModified": 1_000_030},
        ]
        assert index.page_size == 100
        assert index.last_sync_time == 99

    def test_equal_timestamps_are_stable(self):
        """Test that ties on timestamp are ordered by id, whatever the input order."""
        records = [{"id": c, "timestamp": 5} for c in "dbca"]

        first, _ = paginate(records, now=1)
        second, _ = paginate(list(reversed(records)), now=1)

        assert [r["id"] for r in first[0].records] == ["a", "b", "c", "d"]
        assert first[0].records == second[0].records

    def test_custom_page_size(self):
        """Test pagination with a smaller page size."""
        pages, index = paginate(make_records(7), page_size=3, now=1)

        assert [len(p.records) for p in pages] == [3, 3, 1]
        assert index.total_pages == 3
        assert index.page_size == 3

    def test_invalid_page_size(self):
        """Test that a non-positive page size is rejected."""
        with pytest.raises(ValueError, match="page_size"):
            paginate(make_records(3), page_size=0)

    def test_input_is_not_mutated(self):
        """Test that paginate leaves the caller's list untouched."""
        records = make_records(5)
        original = list(records)

        paginate(records, now=1)

        assert records == original


class TestMergeRecords:
    """Tests for merge_records()."""

    def test_union_of_ids(self):
        """Test that the merged id set is the union of both inputs."""
        local = make_records(10, prefix="l")
        remote = make_records(15, prefix="r")

        merged = merge_records(local, remote)

        assert {r["id"] for r in merged} == {r["id"] for r in local} | {
            r["id"] for r in remote
        }

    def test_local_copy_wins_on_collision(self):
        """Test that the local record is kept even when the remote one is newer.

        This is the documented local-wins rule: it is not a timestamp
        comparison, so concurrent edits of one id on two devices lose the
        remote edit.
        """
        local = [{"id": "x", "timestamp": 1, "text": "local"}]
        remote = [{"id": "x", "timestamp": 999, "text": "remote"}]

        merged = merge_records(local, remote)

        assert merged == [{"id": "x", "timestamp": 1, "text": "local"}]

    def test_overlapping_sets(self):
        """Test precedence for every shared id in overlapping sets."""
        local = [dict(r, side="local") for r in make_records(20)]
        remote = [dict(r, side="remote") for r in make_records(20, start=11)]

        merged = {r["id"]: r for r in merge_records(local, remote)}

        assert len(merged) == 30
        for i in range(1, 21):
            assert merged[f"h{i}"]["side"] == "local"
        for i in range(21, 31):
            assert merged[f"h{i}"]["side"] == "remote"

    def test_result_sorted_newest_first(self):
        """Test that merged output is sorted by timestamp descending."""
        merged = merge_records(make_records(3, start=1), make_records(3, start=10))

        assert [r["id"] for r in merged] == ["h12", "h11", "h10", "h3", "h2", "h1"]

    def test_empty_inputs(self):
        """Test merging empty sets."""
        assert merge_records([], []) == []
        assert merge_records(make_records(2), []) == sort_records(make_records(2))
