"""WebDAV client for the remote record store."""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import (
    AuthenticationError,
    ConnectivityError,
    RemoteNetworkError,
    RemoteResponseError,
)
from .models import dump_json, load_json
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT

if TYPE_CHECKING:
    from .config import WebDAVCredentials

logger = logging.getLogger(__name__)

# Status codes a MKCOL may answer with when the collection already exists
_MKCOL_EXISTS = (405,)


class WebDAVClient:
    """Client speaking the small WebDAV subset the sync engine needs.

    Only four verbs are used: ``PROPFIND`` to check connectivity, ``MKCOL``
    to create directories, ``GET`` to download a file and ``PUT`` to
    overwrite one. All paths are relative to the base URL.
    """

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the WebDAV client.

        Args:
            base_url: Server URL; a trailing slash is added if missing
            username: HTTP Basic user name
            password: HTTP Basic password
            max_retries: Retry attempts for transient failures (default: 0)
            retry_delay: Initial delay between retries in seconds
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.username = username
        self.password = password
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    @classmethod
    def from_credentials(
        cls, credentials: WebDAVCredentials, **kwargs: Any
    ) -> WebDAVClient:
        """Create a client from configured credentials."""
        return cls(
            base_url=credentials.base_url,
            username=credentials.username,
            password=credentials.password,
            **kwargs,
        )

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.base_url,
                auth=httpx.BasicAuth(self.username, self.password),
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> WebDAVClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================
    # Request handling
    # =========================

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _error_for_status(self, method: str, path: str, status_code: int) -> ConnectivityError:
        if status_code in (401, 403):
            return AuthenticationError(
                f"{method} /{path} rejected with status {status_code} - check credentials"
            )
        return RemoteResponseError(
            f"WebDAV {method} /{path} failed with status {status_code}",
            status_code=status_code,
        )

    def _request(
        self,
        method: str,
        path: str,
        accept: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying transient failures if configured.

        Args:
            method: HTTP or WebDAV method
            path: Path relative to the base URL
            accept: Non-2xx status codes the caller handles itself
            **kwargs: Additional arguments passed to httpx

        Returns:
            The response (2xx or one of ``accept``)

        Raises:
            AuthenticationError: On 401/403
            RemoteResponseError: On any other unexpected status
            RemoteNetworkError: If the server cannot be reached
        """
        path = path.lstrip("/")
        client = self._get_client()
        last_exception: ConnectivityError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, path, **kwargs)
            except httpx.RequestError as e:
                last_exception = RemoteNetworkError(f"Network error: {e}")
                if attempt < self.max_retries:
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise last_exception from e

            status = response.status_code
            logger.debug(f"{method} /{path} -> {status}")
            if response.is_success or status in accept:
                return response

            last_exception = self._error_for_status(method, path, status)
            transient = status == 429 or 500 <= status < 600
            if transient and attempt < self.max_retries:
                retry_after = response.headers.get("Retry-After")
                if retry_after and retry_after.isdigit():
                    delay = float(retry_after)
                else:
                    delay = self._calculate_retry_delay(attempt)
                time.sleep(delay)
                continue
            raise last_exception

        # Unreachable unless max_retries is negative
        raise last_exception or ConnectivityError(f"{method} /{path} was never sent")

    # =========================
    # Protocol operations
    # =========================

    def probe(self) -> bool:
        """Check connectivity and credentials with a depth-0 PROPFIND.

        A 405 answer still proves the credentials were accepted.

        Returns:
            True if the server is reachable and accepted the credentials
        """
        try:
            response = self._get_client().request(
                "PROPFIND", "", headers={"Depth": "0"}
            )
        except httpx.RequestError as e:
            logger.warning(f"WebDAV connection failed: {e}")
            return False
        if response.is_success or response.status_code == 405:
            return True
        logger.warning(f"WebDAV probe failed with status {response.status_code}")
        return False

    def ensure_directory(self, path: str) -> None:
        """Create a directory and its parents; existing ones are fine.

        Args:
            path: Directory path relative to the base URL, e.g. ``history``
        """
        segments = [s for s in path.strip("/").split("/") if s]
        for depth in range(1, len(segments) + 1):
            current = "/".join(segments[:depth]) + "/"
            response = self._request("MKCOL", current, accept=_MKCOL_EXISTS)
            if response.status_code in _MKCOL_EXISTS:
                logger.debug(f"Directory /{current} already exists")
            else:
                logger.info(f"Created remote directory /{current}")

    def get_file(self, path: str) -> bytes | None:
        """Download a file.

        Returns:
            File content, or None if the file does not exist
        """
        response = self._request("GET", path, accept=(404,))
        if response.status_code == 404:
            logger.debug(f"Remote file /{path.lstrip('/')} not found")
            return None
        return response.content

    def put_file(self, path: str, content: bytes) -> None:
        """Overwrite a file with ``content``."""
        self._request(
            "PUT",
            path,
            content=content,
            headers={"Content-Type": "application/json"},
        )
        logger.debug(f"Uploaded /{path.lstrip('/')} ({len(content)} bytes)")

    def get_json(self, path: str) -> Any | None:
        """Download and parse a JSON file; None if it does not exist.

        Raises:
            InvalidRemoteDataError: If the file is not valid JSON
        """
        content = self.get_file(path)
        if content is None:
            return None
        return load_json(content, source=f"/{path.lstrip('/')}")

    def put_json(self, path: str, data: Any) -> None:
        """Serialize ``data`` deterministically and upload it."""
        self.put_file(path, dump_json(data))
