"""Sync configuration.

Remote sync is either disabled or configured with WebDAV credentials.
Settings are stored as JSON in ``~/.config/echosync/webdav.json`` and can
be overridden with environment variables:

- ``ECHOSYNC_CONFIG_DIR``: directory holding ``webdav.json``
- ``ECHOSYNC_DB_PATH``: local database file
- ``ECHOSYNC_WEBDAV_URL``, ``ECHOSYNC_WEBDAV_USERNAME``,
  ``ECHOSYNC_WEBDAV_PASSWORD``, ``ECHOSYNC_WEBDAV_ENABLED``
- ``ECHOSYNC_PROXY_URL``: base URL used when the server URL is blank
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .exceptions import ConfigError
from .utils import DEFAULT_PROXY_URL

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "webdav.json"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SyncDisabled:
    """Remote sync is turned off; only the local store is used."""

    enabled = False


@dataclass(frozen=True)
class WebDAVCredentials:
    """Remote sync is on and talks to this WebDAV server."""

    url: str
    username: str
    password: str
    proxy_url: str = DEFAULT_PROXY_URL

    enabled = True

    @property
    def base_url(self) -> str:
        """Server URL ending with ``/``; the proxy URL when ``url`` is blank."""
        url = self.url.strip() or self.proxy_url
        return url if url.endswith("/") else f"{url}/"


SyncSettings = Union[SyncDisabled, WebDAVCredentials]


def get_config_dir() -> Path:
    """Directory holding echosync configuration."""
    env_dir = os.environ.get("ECHOSYNC_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".config" / "echosync"


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE_NAME


def get_db_path() -> Path:
    """Local database file (``ECHOSYNC_DB_PATH`` or the default location)."""
    env_path = os.environ.get("ECHOSYNC_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path.home() / ".local" / "share" / "echosync" / "echosync.db"


def _read_config_file(path: Path) -> dict:
    if not path.exists():
        logger.debug(f"No sync config at {path}")
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read sync config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Sync config {path} must contain a JSON object")
    return data


def load_settings(path: Optional[Path] = None) -> SyncSettings:
    """Load sync settings from the config file and environment.

    Args:
        path: Config file (defaults to :func:`get_config_path`)

    Returns:
        :class:`SyncDisabled` or :class:`WebDAVCredentials`

    Raises:
        ConfigError: If the config file is malformed
    """
    data = _read_config_file(path or get_config_path())

    url = os.environ.get("ECHOSYNC_WEBDAV_URL", data.get("url") or "")
    username = os.environ.get("ECHOSYNC_WEBDAV_USERNAME", data.get("username") or "")
    password = os.environ.get("ECHOSYNC_WEBDAV_PASSWORD", data.get("password") or "")
    proxy_url = os.environ.get("ECHOSYNC_PROXY_URL", DEFAULT_PROXY_URL)

    env_enabled = os.environ.get("ECHOSYNC_WEBDAV_ENABLED")
    if env_enabled is not None:
        enabled = env_enabled.strip().lower() in _TRUE_VALUES
    else:
        enabled = bool(data.get("enabled", False))

    if not enabled:
        return SyncDisabled()
    return WebDAVCredentials(
        url=url, username=username, password=password, proxy_url=proxy_url
    )


def save_settings(
    url: str,
    username: str,
    password: str,
    enabled: bool = True,
    path: Optional[Path] = None,
) -> Path:
    """Persist sync settings.

    Returns:
        Path of the written config file
    """
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"url": url, "username": username, "password": password, "enabled": enabled}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    # Holds a password
    try:
        path.chmod(0o600)
    except OSError as e:
        logger.warning(f"Could not restrict permissions on {path}: {e}")
    logger.debug(f"Saved sync config to {path}")
    return path
