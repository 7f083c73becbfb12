"""Remote operations on one paginated collection."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional, Union

from ..exceptions import InvalidRecordError, InvalidRemoteDataError
from ..models import Collection, PagedData, PageIndex, Record, validate_record
from ..utils import DEFAULT_MAX_WORKERS, INDEX_FILE_NAME, join_remote_path, page_file_name
from ..webdav import WebDAVClient

logger = logging.getLogger(__name__)


class RemoteCollection:
    """Reads and writes the pages and index of one collection.

    Layout::

        {base}/{collection}/index.json
        {base}/{collection}/page_{n}.json
    """

    def __init__(
        self,
        client: WebDAVClient,
        collection: Union[Collection, str],
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """Initialize remote collection operations.

        Args:
            client: WebDAV client
            collection: Collection to operate on
            max_workers: Number of parallel page transfers (default: 4)
        """
        self.client = client
        self.collection = Collection(collection)
        self.max_workers = max(1, max_workers)

    @property
    def directory(self) -> str:
        return self.collection.value

    @property
    def index_path(self) -> str:
        return join_remote_path(self.directory, INDEX_FILE_NAME)

    def page_path(self, page_number: int) -> str:
        return join_remote_path(self.directory, page_file_name(page_number))

    def ensure_directory(self) -> None:
        self.client.ensure_directory(self.directory)

    # =========================
    # Downloads
    # =========================

    def fetch_index(self) -> Optional[PageIndex]:
        """Download the index.

        Returns:
            The index, or None if this collection was never uploaded
        """
        data = self.client.get_json(self.index_path)
        if data is None:
            return None
        return PageIndex.from_dict(data)

    def fetch_page(self, page_number: int) -> list[Record]:
        """Download one page's records.

        A page listed in the index may be missing after an interrupted
        upload; it is treated as empty.

        Raises:
            InvalidRemoteDataError: If the page is malformed or holds a
                record without a string id and integer timestamp
        """
        data = self.client.get_json(self.page_path(page_number))
        if data is None:
            logger.warning(
                f"{self.directory}: page {page_number} is missing, treating as empty"
            )
            return []
        page = PagedData.from_dict(data)
        if page.page_number != page_number:
            raise InvalidRemoteDataError(
                f"{self.page_path(page_number)} claims to be page {page.page_number}"
            )
        try:
            return [validate_record(record) for record in page.records]
        except InvalidRecordError as e:
            raise InvalidRemoteDataError(
                f"{self.page_path(page_number)} holds an invalid record: {e}"
            ) from e

    def fetch_all(self, index: PageIndex) -> list[Record]:
        """Download every page listed in the index, in page order."""
        page_numbers = sorted(p.page_number for p in index.pages)
        if not page_numbers:
            return []
        logger.debug(f"{self.directory}: downloading {len(page_numbers)} page(s)")

        results: dict[int, list[Record]] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.fetch_page, number): number
                for number in page_numbers
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        records: list[Record] = []
        for number in page_numbers:
            records.extend(results[number])
        return records

    # =========================
    # Uploads
    # =========================

    def upload_page(self, page: PagedData) -> None:
        self.client.put_json(self.page_path(page.page_number), page.to_dict())

    def upload_pages(self, pages: list[PagedData]) -> int:
        """Upload pages in parallel and wait for all of them.

        Raises:
            ConnectivityError: The first failure, after every started
                upload has finished
        """
        if not pages:
            return 0

        first_error: Optional[Exception] = None
        uploaded = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self.upload_page, page): page for page in pages}
            for future in as_completed(futures):
                page = futures[future]
                try:
                    future.result()
                    uploaded += 1
                except Exception as e:
                    logger.error(
                        f"{self.directory}: upload of page {page.page_number} failed: {e}"
                    )
                    if first_error is None:
                        first_error = e

        if first_error is not None:
            raise first_error
        return uploaded

    def upload_index(self, index: PageIndex) -> None:
        self.client.put_json(self.index_path, index.to_dict())

    def upload(self, pages: list[PagedData], index: PageIndex) -> int:
        """Upload pages, then the index once every page is written.

        Returns:
            Number of pages uploaded
        """
        uploaded = self.upload_pages(pages)
        self.upload_index(index)
        logger.debug(
            f"{self.directory}: uploaded {uploaded} page(s) and index "
            f"({index.total_records} records)"
        )
        return uploaded
