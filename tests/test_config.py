"""Tests for sync settings."""

import json

import pytest

from echosync.config import (
    SyncDisabled,
    WebDAVCredentials,
    get_config_path,
    get_db_path,
    load_settings,
    save_settings,
)
from echosync.exceptions import ConfigError
from echosync.utils import DEFAULT_PROXY_URL

ENV_VARS = [
    "ECHOSYNC_WEBDAV_URL",
    "ECHOSYNC_WEBDAV_USERNAME",
    "ECHOSYNC_WEBDAV_PASSWORD",
    "ECHOSYNC_WEBDAV_ENABLED",
    "ECHOSYNC_PROXY_URL",
    "ECHOSYNC_DB_PATH",
]


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ECHOSYNC_CONFIG_DIR", str(tmp_path))
    return tmp_path


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_disabled_without_config(self):
        settings = load_settings()
        assert isinstance(settings, SyncDisabled)
        assert settings.enabled is False

    def test_save_and_load(self, config_dir):
        path = save_settings("https://dav.example.com/files", "bob", "pw")

        assert path == config_dir / "webdav.json"
        settings = load_settings()
        assert settings == WebDAVCredentials(
            url="https://dav.example.com/files", username="bob", password="pw"
        )
        assert settings.base_url == "https://dav.example.com/files/"

    def test_saved_disabled(self):
        save_settings("https://dav.example.com", "bob", "pw", enabled=False)
        assert isinstance(load_settings(), SyncDisabled)

    def test_blank_url_uses_proxy(self):
        save_settings("", "bob", "pw")

        settings = load_settings()

        assert settings.base_url == DEFAULT_PROXY_URL

    def test_custom_proxy(self, monkeypatch):
        monkeypatch.setenv("ECHOSYNC_PROXY_URL", "http://127.0.0.1:9000/dav")
        save_settings(" ", "bob", "pw")

        assert load_settings().base_url == "http://127.0.0.1:9000/dav/"

    def test_environment_overrides(self, monkeypatch):
        save_settings("https://file.example.com", "bob", "pw", enabled=False)
        monkeypatch.setenv("ECHOSYNC_WEBDAV_ENABLED", "true")
        monkeypatch.setenv("ECHOSYNC_WEBDAV_URL", "https://env.example.com")
        monkeypatch.setenv("ECHOSYNC_WEBDAV_PASSWORD", "envpw")

        settings = load_settings()

        assert settings.url == "https://env.example.com"
        assert settings.username == "bob"
        assert settings.password == "envpw"

    def test_environment_can_disable(self, monkeypatch):
        save_settings("https://file.example.com", "bob", "pw")
        monkeypatch.setenv("ECHOSYNC_WEBDAV_ENABLED", "0")

        assert isinstance(load_settings(), SyncDisabled)

    def test_malformed_config(self, config_dir):
        (config_dir / "webdav.json").write_text("{broken")

        with pytest.raises(ConfigError, match="Cannot read"):
            load_settings()

    def test_config_must_be_object(self, config_dir):
        (config_dir / "webdav.json").write_text(json.dumps(["url"]))

        with pytest.raises(ConfigError, match="JSON object"):
            load_settings()


class TestPaths:
    """Tests for config and database locations."""

    def test_config_path_from_env(self, config_dir):
        assert get_config_path() == config_dir / "webdav.json"

    def test_db_path_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ECHOSYNC_DB_PATH", str(tmp_path / "x.db"))
        assert get_db_path() == tmp_path / "x.db"

    def test_saved_file_is_private(self, config_dir):
        path = save_settings("https://dav.example.com", "bob", "pw")
        assert path.stat().st_mode & 0o077 == 0
