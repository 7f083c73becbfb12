"""Shared fixtures: an in-memory WebDAV server behind httpx.MockTransport."""

import base64
import threading
from typing import Callable, Optional

import httpx
import pytest

from echosync.config import WebDAVCredentials
from echosync.store import LocalStore
from echosync.webdav import WebDAVClient

BASE_URL = "http://dav.test/dav/"
BASE_PATH = "/dav/"
USERNAME = "alice"
PASSWORD = "secret"
FIXED_NOW = 1_700_000_000_000


class FakeWebDAVServer:
    """Just enough of a WebDAV server for the sync engine.

    Files and directories are kept in memory keyed by their path below
    ``/dav/``. Every request is logged as ``(method, path)``.
    """

    def __init__(self, username: str = USERNAME, password: str = PASSWORD):
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        self.expected_auth = f"Basic {token}"
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {""}
        self.requests: list[tuple[str, str]] = []
        self.propfind_status = 207
        self.fail: Optional[Callable[[str, str], Optional[int]]] = None
        """Return a status code to fail a (method, path) request"""
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.startswith(BASE_PATH.rstrip("/"))
        path = path[len(BASE_PATH) :].strip("/") if len(path) >= len(BASE_PATH) else ""
        method = request.method

        with self._lock:
            self.requests.append((method, path))
            if request.headers.get("Authorization") != self.expected_auth:
                return httpx.Response(401)
            if self.fail is not None:
                status = self.fail(method, path)
                if status is not None:
                    return httpx.Response(status)

            if method == "PROPFIND":
                return httpx.Response(self.propfind_status)
            if method == "MKCOL":
                if path in self.dirs:
                    return httpx.Response(405)
                parent = path.rsplit("/", 1)[0] if "/" in path else ""
                if parent not in self.dirs:
                    return httpx.Response(409)
                self.dirs.add(path)
                return httpx.Response(201)
            if method == "GET":
                if path not in self.files:
                    return httpx.Response(404)
                return httpx.Response(200, content=self.files[path])
            if method == "PUT":
                parent = path.rsplit("/", 1)[0] if "/" in path else ""
                if parent not in self.dirs:
                    return httpx.Response(409)
                self.files[path] = request.read()
                return httpx.Response(201)
            return httpx.Response(405)

    def paths(self, method: str) -> list[str]:
        """Paths requested with ``method``, in order."""
        return [p for m, p in self.requests if m == method]


def make_records(
    count: int, prefix: str = "h", start: int = 1, base_timestamp: int = 1_000_000
) -> list[dict]:
    """Records ``{prefix}{start}..`` with increasing, distinct timestamps."""
    return [
        {
            "id": f"{prefix}{i}",
            "timestamp": base_timestamp + i,
            "text": f"record {i}",
        }
        for i in range(start, start + count)
    ]


@pytest.fixture
def server():
    return FakeWebDAVServer()


@pytest.fixture
def client(server):
    webdav = WebDAVClient(
        BASE_URL,
        username=USERNAME,
        password=PASSWORD,
        transport=httpx.MockTransport(server.handler),
    )
    yield webdav
    webdav.close()


@pytest.fixture
def credentials():
    return WebDAVCredentials(url=BASE_URL, username=USERNAME, password=PASSWORD)


@pytest.fixture
def store():
    local = LocalStore(":memory:")
    yield local
    local.close()
