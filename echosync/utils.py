"""Constants and small helpers shared across echosync."""

import time
from datetime import datetime
from typing import Optional

# =============================================================================
# Constants for remote layout and transport
# =============================================================================

# Number of records per remote page
PAGE_SIZE: int = 100

# Version stamped into every remote index.json
INDEX_VERSION: int = 1

INDEX_FILE_NAME: str = "index.json"

# Request timeout for WebDAV calls (seconds)
DEFAULT_TIMEOUT: float = 30.0

# Retries are opt-in; a failed sync is reported to the caller instead
DEFAULT_MAX_RETRIES: int = 0
DEFAULT_RETRY_DELAY: float = 1.0

# Parallel page uploads
DEFAULT_MAX_WORKERS: int = 4

# Used when the configured server URL is blank
DEFAULT_PROXY_URL: str = "http://localhost:3000/webdav-proxy/"


# =============================================================================
# Remote path helpers
# =============================================================================


def page_file_name(page_number: int) -> str:
    """Return the file name of a remote page.

    Examples:
        >>> page_file_name(0)
        'page_0.json'
    """
    return f"page_{page_number}.json"


def join_remote_path(*parts: str) -> str:
    """Join remote path segments with single forward slashes.

    Examples:
        >>> join_remote_path("history/", "/index.json")
        'history/index.json'
    """
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


# =============================================================================
# Timestamp utilities
# =============================================================================


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    """Format an epoch-ms timestamp for display.

    Args:
        timestamp_ms: Epoch milliseconds, or None

    Returns:
        Local time as ``YYYY-MM-DD HH:MM:SS``, or ``"-"`` when missing
    """
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")
