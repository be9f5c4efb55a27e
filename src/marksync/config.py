"""Configuration management using Pydantic Settings.

This module provides settings management that reads from environment
variables and an optional TOML config file. All files marksync uses
live in one home directory, `~/.config/marksync` unless MARKSYNC_HOME
points elsewhere.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from marksync import __version__
from marksync.errors import ConfigError
from marksync.models import CacheMode

if TYPE_CHECKING:
    pass

HOME_ENV_VAR = "MARKSYNC_HOME"


def get_default_config_dir() -> Path:
    """Get the marksync home directory.

    Returns:
        Path from MARKSYNC_HOME, or ~/.config/marksync.
    """
    home = os.environ.get(HOME_ENV_VAR)
    if home:
        return Path(home).expanduser()
    return Path.home() / ".config" / "marksync"


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    Returns:
        Path to the config file.
    """
    return get_default_config_dir() / "config.toml"


def get_default_bookmarks_path() -> Path:
    """Get the default bookmark store path.

    Returns:
        Path to the bookmarks file.
    """
    return get_default_config_dir() / "bookmarks.json"


def get_default_cache_dir() -> Path:
    """Get the default cache directory.

    Returns:
        Path to the cache directory.
    """
    return get_default_config_dir() / "cache"


def _split_list(v: Any) -> Any:
    if isinstance(v, str):
        # Handle comma-separated string
        return [item.strip() for item in v.split(",") if item.strip()]
    return v if v else []


class SourceSettings(BaseModel):
    """A bookmark source to import from.

    Attributes:
        source: Bookmark file, or a directory of bookmark backups.
        folders: Folders to import from. Imports everything if empty.
    """

    source: Path = Field(..., description="Path to the bookmark file")
    folders: list[str] = Field(default_factory=list, description="Folders to import")

    @field_validator("folders", mode="before")
    @classmethod
    def parse_folders(cls, v: Any) -> list[str]:
        """Parse folders from string or list.

        Args:
            v: Input value (string or list).

        Returns:
            List of folder names.
        """
        return _split_list(v)


class FetchSettings(BaseSettings):
    """Settings for fetching websites.

    Attributes:
        max_concurrent_requests: Bookmarks fetched at the same time.
        request_timeout: Timeout of a single request in milliseconds.
        request_throttling: Throttling interval per host in milliseconds.
        max_idle_connections_per_host: Idle connections kept in the pool.
        idle_connections_timeout: How long idle connections are kept in milliseconds.
        user_agent: User agent sent with every request.
    """

    model_config = SettingsConfigDict(
        env_prefix="MARKSYNC_FETCH_",
        env_file=".env",
        extra="ignore",
    )

    max_concurrent_requests: int = Field(100, ge=1, description="Concurrent requests")
    request_timeout: int = Field(60_000, ge=1, description="Request timeout (ms)")
    request_throttling: int = Field(3_000, ge=0, description="Throttling per host (ms)")
    max_idle_connections_per_host: int = Field(10, ge=0, description="Idle connections")
    idle_connections_timeout: int = Field(5_000, ge=0, description="Idle timeout (ms)")
    user_agent: str = Field(f"marksync/{__version__}", description="User agent")


class Settings(BaseSettings):
    """Main application settings.

    Attributes:
        sources: Bookmark sources to import from.
        cache_mode: Representation websites are cached in.
        ignored_urls: Urls which are never kept.
        log_level: Logging level.
        fetch: Settings for fetching websites.
        config_path: Path to the config file.
        bookmarks_path: Path to the bookmark store.
        cache_dir: Directory for cached websites.
    """

    model_config = SettingsConfigDict(
        env_prefix="MARKSYNC_",
        env_file=".env",
        extra="ignore",
    )

    sources: list[SourceSettings] = Field(default_factory=list, description="Bookmark sources")
    cache_mode: CacheMode = Field(CacheMode.TEXT, description="Cache mode")
    ignored_urls: list[str] = Field(default_factory=list, description="Ignored urls")
    log_level: str = Field("WARNING", description="Logging level")
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    config_path: Path = Field(
        default_factory=get_default_config_path,
        description="Path to config file",
    )
    bookmarks_path: Path = Field(
        default_factory=get_default_bookmarks_path,
        description="Path to the bookmark store",
    )
    cache_dir: Path = Field(
        default_factory=get_default_cache_dir,
        description="Directory for cached websites",
    )

    @field_validator("ignored_urls", mode="before")
    @classmethod
    def parse_ignored_urls(cls, v: Any) -> list[str]:
        """Parse ignored urls from string or list.

        Args:
            v: Input value (string or list).

        Returns:
            List of urls.
        """
        return _split_list(v)

    @model_validator(mode="before")
    @classmethod
    def load_config_file(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Load settings from config file if it exists.

        Args:
            data: Input data dict.

        Returns:
            Merged data dict with config file values.
        """
        config_path = data.get("config_path") or get_default_config_path()
        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path.exists():
            file_config = read_config_file(config_path)

            # Merge file config with provided data (data takes precedence)
            merged = _deep_merge(file_config, data)
            return merged

        return data

    @classmethod
    def from_file(cls, config_path: Path | None = None) -> Settings:
        """Load settings from a config file.

        Args:
            config_path: Path to the config file. Uses default if None.

        Returns:
            Settings instance.
        """
        if config_path is None:
            config_path = get_default_config_path()

        return cls(config_path=config_path)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary (values take precedence).

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        elif value is not None:
            result[key] = value
    return result


def read_config_file(config_path: Path) -> dict[str, Any]:
    """Read a TOML config file.

    Args:
        config_path: Path to the config file.

    Returns:
        Parsed config file.

    Raises:
        ConfigError: If the file is not valid TOML.
    """
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e


def settings_to_toml(
    settings: Settings, existing: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Convert settings to the config file layout.

    Keys of the existing config file are kept, so values that were never
    edited (the fetch table, custom paths) survive a save. Other settings
    are only written when they differ from their defaults, which keeps
    values from environment variables out of the file as far as possible.

    Args:
        settings: Settings to convert.
        existing: Content of the current config file.

    Returns:
        Dict that tomli_w can write.
    """
    data = dict(existing or {})
    data["sources"] = [
        {"source": str(source.source), "folders": list(source.folders)}
        for source in settings.sources
    ]
    data["ignored_urls"] = list(settings.ignored_urls)

    defaults: list[tuple[str, Any, Any]] = [
        ("cache_mode", settings.cache_mode.value, CacheMode.TEXT.value),
        ("log_level", settings.log_level, "WARNING"),
        ("bookmarks_path", str(settings.bookmarks_path), str(get_default_bookmarks_path())),
        ("cache_dir", str(settings.cache_dir), str(get_default_cache_dir())),
    ]
    for key, value, default in defaults:
        if key in data or value != default:
            data[key] = value

    return data


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Write settings to the config file.

    Args:
        settings: Settings to write.
        path: Path of the config file. Uses settings.config_path if None.

    Returns:
        Path to the written config file.
    """
    if path is None:
        path = settings.config_path

    existing = read_config_file(path) if path.exists() else {}

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        tomli_w.dump(settings_to_toml(settings, existing), f)

    return path


def create_default_config(path: Path | None = None) -> Path:
    """Create a default config file template.

    Args:
        path: Path to create the config file. Uses default if None.

    Returns:
        Path to the created config file.
    """
    if path is None:
        path = get_default_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    default_config = {
        "log_level": "WARNING",
        "cache_mode": CacheMode.TEXT.value,
        "ignored_urls": [],
        "sources": [],
        "fetch": {
            "max_concurrent_requests": 100,
            "request_timeout": 60_000,
            "request_throttling": 3_000,
            "max_idle_connections_per_host": 10,
            "idle_connections_timeout": 5_000,
        },
    }

    with open(path, "wb") as f:
        tomli_w.dump(default_config, f)

    return path


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from environment and config file.

    This is the main entry point for loading configuration.

    Args:
        config_path: Optional path to config file.

    Returns:
        Configured Settings instance.
    """
    init_data: dict[str, Any] = {}
    if config_path:
        init_data["config_path"] = config_path

    return Settings(**init_data)
