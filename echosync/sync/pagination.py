"""Split record collections into fixed-size pages and merge record sets.

Everything in this module is pure: no I/O, no clock reads unless ``now``
is omitted.
"""

import math
from collections.abc import Iterable
from typing import Optional

from ..models import PagedData, PageEntry, PageIndex, Record
from ..utils import PAGE_SIZE, now_ms


def sort_records(records: Iterable[Record]) -> list[Record]:
    """Sort records newest first.

    Equal timestamps are ordered by id so the result is stable.
    """
    return sorted(records, key=lambda r: (-r["timestamp"], r["id"]))


def paginate(
    records: Iterable[Record],
    page_size: int = PAGE_SIZE,
    now: Optional[int] = None,
) -> tuple[list[PagedData], PageIndex]:
    """Split a record set into pages plus the index describing them.

    Page 0 holds the ``page_size`` most recent records. An empty set yields
    no pages and an index with ``total_pages == 0``.

    Args:
        records: Records to paginate (any order)
        page_size: Records per page (default: 100)
        now: Epoch-ms stamped as ``last_sync_time`` (default: current time)

    Returns:
        Tuple of (pages, index)

    Examples:
        >>> pages, index = paginate([{"id": "a", "timestamp": 1}], now=5)
        >>> index.total_pages, pages[0].records[0]["id"]
        (1, 'a')
    """
    if page_size < 1:
        raise ValueError("page_size must be positive")

    ordered = sort_records(records)
    pages: list[PagedData] = []
    entries: list[PageEntry] = []
    for page_number, start in enumerate(range(0, len(ordered), page_size)):
        chunk = ordered[start : start + page_size]
        pages.append(PagedData(page_number=page_number, records=chunk))
        entries.append(
            PageEntry(
                page_number=page_number,
                record_count=len(chunk),
                last_modified=chunk[0]["timestamp"],
            )
        )

    index = PageIndex(
        total_records=len(ordered),
        total_pages=math.ceil(len(ordered) / page_size),
        last_sync_time=now_ms() if now is None else now,
        pages=entries,
        page_size=page_size,
    )
    return pages, index


def flatten_pages(pages: Iterable[PagedData]) -> list[Record]:
    """Concatenate page records in page order."""
    records: list[Record] = []
    for page in sorted(pages, key=lambda p: p.page_number):
        records.extend(page.records)
    return records


def merge_records(local: Iterable[Record], remote: Iterable[Record]) -> list[Record]:
    """Union two record sets by id, keeping the local copy on collision.

    Remote records are inserted first and local ones after, so whichever
    copy is written last into the map wins. This is not a timestamp
    comparison: a stale local copy replaces a newer remote edit, and a
    record deleted on one device comes back from any device still holding
    it.

    Returns:
        Merged records, newest first
    """
    merged: dict[str, Record] = {}
    for record in remote:
        merged[record["id"]] = record
    for record in local:
        merged[record["id"]] = record
    return sort_records(merged.values())
