"""Readers for browser bookmark exports.

Chromium based browsers and Firefox export JSON trees, Safari stores
its bookmarks in a plist. All of them are walked with `traverse`.
"""

from __future__ import annotations

import json
import plistlib
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from marksync.errors import SourceReadError
from marksync.models import SourceType
from marksync.readers.base import SourceReader, traverse

if TYPE_CHECKING:
    from marksync.bookmarks.source import SourceBookmarks

logger = structlog.get_logger(__name__)


def _http_url(value: Any) -> str | None:
    if isinstance(value, str) and "http" in value:
        return value
    return None


def load_json(path: Path, content: bytes) -> Any:
    """Parse a JSON bookmark file.

    Args:
        path: Path of the file, used in errors.
        content: Raw file content.

    Returns:
        Parsed JSON value.

    Raises:
        SourceReadError: If the content is not valid JSON.
    """
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SourceReadError(path, f"invalid json: {e}") from e


def is_chromium_export(data: Any) -> bool:
    """Check whether parsed JSON is a Chromium bookmark file."""
    return isinstance(data, dict) and all(key in data for key in ("checksum", "roots", "version"))


def is_firefox_export(data: Any) -> bool:
    """Check whether parsed JSON is a Firefox bookmark backup."""
    return isinstance(data, dict) and data.get("type") == "text/x-moz-place-container"


def chromium_source_type(path: Path) -> SourceType:
    """Guess the Chromium based browser from the file path.

    Args:
        path: Path of the bookmark file.

    Returns:
        The browser's source type, CHROMIUM_FAMILY if it can't be told.
    """
    path_str = str(path).lower()
    if "chromium" in path_str:
        return SourceType.CHROMIUM
    if "chrome" in path_str:
        return SourceType.CHROME
    if "edge" in path_str:
        return SourceType.EDGE
    return SourceType.CHROMIUM_FAMILY


class JsonReader(SourceReader):
    """Base class for readers of JSON bookmark trees."""

    extensions = (".json", "")

    def select_bookmark(self, node: dict[str, Any]) -> str | None:
        """Get the url of a bookmark node."""
        raise NotImplementedError

    def select_folder(self, node: dict[str, Any]) -> str | None:
        """Get the name of a folder node."""
        raise NotImplementedError

    def import_into(self, bookmarks: SourceBookmarks) -> None:
        """Add the bookmarks of the JSON tree to the collection."""
        data = load_json(self.path, self.read_bytes())
        source = self.source_type.value

        def on_bookmark(url: str, folder: str | None) -> None:
            bookmarks.add(url, source, folder)

        traverse(data, self.select_bookmark, self.select_folder, self.folders, on_bookmark)
        logger.debug("Read json bookmarks", path=str(self.path), source=source)


class ChromiumReader(JsonReader):
    """Reads the `Bookmarks` file of Chromium, Chrome, Edge and friends."""

    source_type = SourceType.CHROMIUM_FAMILY

    def __init__(self, path: Path, folders: Sequence[str] = ()) -> None:
        """Initialize the reader.

        Args:
            path: Bookmark file to read.
            folders: Folders to import from. Imports everything if empty.
        """
        super().__init__(path, folders)
        self.source_type = chromium_source_type(path)

    def select_bookmark(self, node: dict[str, Any]) -> str | None:
        """Get the url of a node with type 'url'."""
        if node.get("type") == "url":
            return _http_url(node.get("url"))
        return None

    def select_folder(self, node: dict[str, Any]) -> str | None:
        """Get the name of a node with type 'folder'."""
        name = node.get("name")
        if node.get("type") == "folder" and isinstance(name, str):
            return name
        return None


class FirefoxReader(JsonReader):
    """Reads a Firefox JSON bookmark backup."""

    source_type = SourceType.FIREFOX

    def select_bookmark(self, node: dict[str, Any]) -> str | None:
        """Get the uri of a place node."""
        if node.get("type") == "text/x-moz-place":
            return _http_url(node.get("uri"))
        return None

    def select_folder(self, node: dict[str, Any]) -> str | None:
        """Get the title of a container node."""
        title = node.get("title")
        if node.get("type") == "text/x-moz-place-container" and isinstance(title, str):
            return title
        return None


class SafariReader(SourceReader):
    """Reads Safari's `Bookmarks.plist`, in XML or binary format."""

    source_type = SourceType.SAFARI
    extensions = (".plist",)

    def select_bookmark(self, node: dict[str, Any]) -> str | None:
        """Get the url of a leaf node."""
        if node.get("WebBookmarkType") == "WebBookmarkTypeLeaf":
            return _http_url(node.get("URLString"))
        return None

    def select_folder(self, node: dict[str, Any]) -> str | None:
        """Get the title of a list node."""
        title = node.get("Title")
        if node.get("WebBookmarkType") == "WebBookmarkTypeList" and isinstance(title, str):
            return title
        return None

    def import_into(self, bookmarks: SourceBookmarks) -> None:
        """Add the bookmarks of the plist to the collection."""
        try:
            data = plistlib.loads(self.read_bytes())
        except (plistlib.InvalidFileException, ValueError) as e:
            raise SourceReadError(self.path, f"invalid plist: {e}") from e

        source = self.source_type.value

        def on_bookmark(url: str, folder: str | None) -> None:
            bookmarks.add(url, source, folder)

        traverse(data, self.select_bookmark, self.select_folder, self.folders, on_bookmark)
        logger.debug("Read plist bookmarks", path=str(self.path))
