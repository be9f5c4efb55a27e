"""Tests for configuration management.

This module tests configuration loading from env vars and config files.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from marksync.config import (
    FetchSettings,
    Settings,
    SourceSettings,
    create_default_config,
    get_default_bookmarks_path,
    get_default_cache_dir,
    get_default_config_dir,
    get_default_config_path,
    load_settings,
    save_settings,
)
from marksync.errors import ConfigError
from marksync.models import CacheMode

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch


class TestGetDefaultPaths:
    """Tests for default path functions."""

    def test_home_from_env(self, isolated_home: Path) -> None:
        """Test that MARKSYNC_HOME sets the home directory."""
        assert get_default_config_dir() == isolated_home
        assert get_default_config_path() == isolated_home / "config.toml"
        assert get_default_bookmarks_path() == isolated_home / "bookmarks.json"
        assert get_default_cache_dir() == isolated_home / "cache"

    def test_home_default(self, monkeypatch: MonkeyPatch) -> None:
        """Test the default home directory."""
        monkeypatch.delenv("MARKSYNC_HOME")

        assert get_default_config_dir() == Path.home() / ".config" / "marksync"


class TestSourceSettings:
    """Tests for SourceSettings."""

    def test_folders_from_string(self) -> None:
        """Test comma-separated folders."""
        source = SourceSettings(source=Path("bookmarks.json"), folders="dev, news,")
        assert source.folders == ["dev", "news"]

    def test_folders_default(self) -> None:
        """Test that all folders are imported by default."""
        assert SourceSettings(source=Path("bookmarks.json")).folders == []


class TestFetchSettings:
    """Tests for FetchSettings."""

    def test_defaults(self) -> None:
        """Test default fetch settings."""
        settings = FetchSettings()

        assert settings.max_concurrent_requests == 100
        assert settings.request_timeout == 60_000
        assert settings.request_throttling == 3_000
        assert settings.max_idle_connections_per_host == 10
        assert settings.idle_connections_timeout == 5_000
        assert settings.user_agent.startswith("marksync/")

    def test_from_env(self, monkeypatch: MonkeyPatch) -> None:
        """Test loading fetch settings from environment."""
        monkeypatch.setenv("MARKSYNC_FETCH_REQUEST_THROTTLING", "500")

        assert FetchSettings().request_throttling == 500

    def test_rejects_zero_concurrency(self) -> None:
        """Test that at least one request must be allowed."""
        with pytest.raises(ValueError):
            FetchSettings(max_concurrent_requests=0)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, isolated_home: Path) -> None:
        """Test settings without config file."""
        settings = Settings()

        assert settings.sources == []
        assert settings.cache_mode == CacheMode.TEXT
        assert settings.ignored_urls == []
        assert settings.log_level == "WARNING"
        assert settings.bookmarks_path == isolated_home / "bookmarks.json"
        assert settings.cache_dir == isolated_home / "cache"

    def test_from_file(self, temp_dir: Path) -> None:
        """Test loading settings from a TOML file."""
        config_path = temp_dir / "config.toml"
        config_path.write_text(
            'cache_mode = "markdown"\n'
            'ignored_urls = ["https://ignored.com/"]\n'
            "\n"
            "[[sources]]\n"
            'source = "/home/user/bookmarks.json"\n'
            'folders = ["dev"]\n'
            "\n"
            "[fetch]\n"
            "request_throttling = 1000\n",
            encoding="utf-8",
        )

        settings = Settings.from_file(config_path)

        assert settings.cache_mode == CacheMode.MARKDOWN
        assert settings.ignored_urls == ["https://ignored.com/"]
        assert settings.sources == [
            SourceSettings(source=Path("/home/user/bookmarks.json"), folders=["dev"])
        ]
        assert settings.fetch.request_throttling == 1000
        assert settings.fetch.max_concurrent_requests == 100
        assert settings.config_path == config_path

    def test_env_overrides_file(self, temp_dir: Path, monkeypatch: MonkeyPatch) -> None:
        """Test that environment variables take precedence over the file."""
        config_path = temp_dir / "config.toml"
        config_path.write_text('cache_mode = "markdown"\n', encoding="utf-8")
        monkeypatch.setenv("MARKSYNC_CACHE_MODE", "html")

        settings = load_settings(config_path)

        assert settings.cache_mode == CacheMode.HTML

    def test_invalid_toml(self, temp_dir: Path) -> None:
        """Test that a broken config file raises ConfigError."""
        config_path = temp_dir / "config.toml"
        config_path.write_text("cache_mode = ", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_settings(config_path)

    def test_loads_default_config_file(self, isolated_home: Path) -> None:
        """Test that the config file in the home directory is used."""
        isolated_home.mkdir(parents=True)
        (isolated_home / "config.toml").write_text('log_level = "DEBUG"\n', encoding="utf-8")

        assert load_settings().log_level == "DEBUG"


class TestCreateDefaultConfig:
    """Tests for default config file creation."""

    def test_creates_file(self, temp_dir: Path) -> None:
        """Test that a loadable default config is written."""
        config_path = temp_dir / "sub" / "config.toml"

        result = create_default_config(config_path)

        assert result == config_path
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        assert data["cache_mode"] == "text"
        assert data["sources"] == []
        assert data["fetch"]["request_throttling"] == 3_000

        settings = load_settings(config_path)
        assert settings.cache_mode == CacheMode.TEXT

    def test_default_path(self, isolated_home: Path) -> None:
        """Test writing to the default location."""
        assert create_default_config() == isolated_home / "config.toml"
        assert (isolated_home / "config.toml").exists()


class TestSaveSettings:
    """Tests for save_settings."""

    def test_round_trip(self, temp_dir: Path) -> None:
        """Test that saved settings load back unchanged."""
        config_path = temp_dir / "config.toml"
        settings = Settings(config_path=config_path)
        settings.sources.append(SourceSettings(source=temp_dir / "b.json", folders=["dev"]))
        settings.ignored_urls.append("https://ignored.com/")
        settings.cache_mode = CacheMode.HTML

        assert save_settings(settings) == config_path
        loaded = load_settings(config_path)

        assert loaded.sources == settings.sources
        assert loaded.ignored_urls == ["https://ignored.com/"]
        assert loaded.cache_mode == CacheMode.HTML
        assert loaded.fetch == settings.fetch

    def test_keeps_file_values(self, temp_dir: Path, monkeypatch: MonkeyPatch) -> None:
        """Test that custom paths survive a save and env values stay out of the file."""
        config_path = temp_dir / "config.toml"
        store_path = temp_dir / "custom" / "store.json"
        cache_dir = temp_dir / "custom" / "cache"
        config_path.write_text(
            f'bookmarks_path = "{store_path}"\n'
            f'cache_dir = "{cache_dir}"\n'
            "\n"
            "[fetch]\n"
            "request_throttling = 1000\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("MARKSYNC_FETCH_REQUEST_TIMEOUT", "5")

        settings = load_settings(config_path)
        settings.ignored_urls.append("https://ignored.com/")
        save_settings(settings)

        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        assert data["fetch"] == {"request_throttling": 1000}
        assert "user_agent" not in data
        loaded = load_settings(config_path)
        assert loaded.bookmarks_path == store_path
        assert loaded.cache_dir == cache_dir
        assert loaded.ignored_urls == ["https://ignored.com/"]
        assert loaded.fetch.request_throttling == 1000

    def test_writes_custom_paths(self, temp_dir: Path) -> None:
        """Test that paths set in code are written when they aren't the defaults."""
        config_path = temp_dir / "config.toml"
        settings = Settings(config_path=config_path, bookmarks_path=temp_dir / "store.json")

        save_settings(settings)

        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        assert data["bookmarks_path"] == str(temp_dir / "store.json")
        assert "cache_dir" not in data
        assert "fetch" not in data
