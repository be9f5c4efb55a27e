"""Persistent bookmark store.

This module reads and writes the bookmark collection as a JSON file,
so that bookmark ids and cache bookkeeping survive between runs.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from marksync.bookmarks.target import TargetBookmarks
from marksync.errors import StoreError
from marksync.models import TargetBookmark

if TYPE_CHECKING:
    pass

logger = structlog.get_logger(__name__)


def _sort_key(bookmark: TargetBookmark) -> tuple[bool, int, str]:
    # Cached bookmarks first, oldest first, then by url.
    return (bookmark.last_cached is None, bookmark.last_cached or 0, bookmark.url)


def serialize_bookmarks(bookmarks: TargetBookmarks) -> str:
    """Serialize bookmarks to the store format.

    Args:
        bookmarks: Bookmarks to serialize.

    Returns:
        JSON document with a stable key and entry order.
    """
    records = [bookmark.to_record() for bookmark in sorted(bookmarks, key=_sort_key)]
    return json.dumps({"bookmarks": records}, indent=4, ensure_ascii=False) + "\n"


def deserialize_bookmarks(content: str, path: Path | str = "<memory>") -> TargetBookmarks:
    """Parse bookmarks from the store format.

    Args:
        content: JSON document.
        path: Where the document came from, used in errors.

    Returns:
        Parsed bookmarks.

    Raises:
        StoreError: If the document is not a valid bookmark store.
    """
    if not content.strip():
        return TargetBookmarks()

    try:
        data: Any = json.loads(content)
    except json.JSONDecodeError as e:
        raise StoreError(path, f"invalid json: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("bookmarks"), list):
        raise StoreError(path, "expected an object with a 'bookmarks' list")

    try:
        return TargetBookmarks(TargetBookmark.from_record(record) for record in data["bookmarks"])
    except ValidationError as e:
        raise StoreError(path, f"invalid bookmark: {e}") from e


class BookmarkStore:
    """Loads and saves the bookmark collection.

    A missing file is an empty store. A corrupt file is an error, since
    overwriting it would lose every bookmark id.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: Path to the bookmarks file.
        """
        self.path = path

    def load(self) -> TargetBookmarks:
        """Load bookmarks from disk.

        Returns:
            Stored bookmarks, empty if the file doesn't exist.

        Raises:
            StoreError: If the file can't be read or parsed.
        """
        if not self.path.exists():
            logger.debug("Bookmark file not found, starting fresh", path=str(self.path))
            return TargetBookmarks()

        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreError(self.path, str(e)) from e

        bookmarks = deserialize_bookmarks(content, self.path)
        logger.debug("Loaded bookmarks", path=str(self.path), count=len(bookmarks))
        return bookmarks

    def save(self, bookmarks: TargetBookmarks) -> None:
        """Write bookmarks to disk atomically.

        Args:
            bookmarks: Bookmarks to save.

        Raises:
            StoreError: If the file can't be written.
        """
        content = serialize_bookmarks(bookmarks)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                f.write(content)
                tmp_path = Path(f.name)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreError(self.path, str(e)) from e

        logger.debug("Saved bookmarks", path=str(self.path), count=len(bookmarks))


class InMemoryStore(BookmarkStore):
    """In-memory store for testing (no file I/O)."""

    def __init__(self, bookmarks: TargetBookmarks | None = None) -> None:
        """Initialize in-memory store.

        Args:
            bookmarks: Initially stored bookmarks.
        """
        super().__init__(Path("/dev/null"))
        self.content = serialize_bookmarks(bookmarks) if bookmarks is not None else ""
        self.save_count = 0

    def load(self) -> TargetBookmarks:
        """Load the last saved bookmarks."""
        return deserialize_bookmarks(self.content)

    def save(self, bookmarks: TargetBookmarks) -> None:
        """Keep the serialized bookmarks in memory."""
        self.content = serialize_bookmarks(bookmarks)
        self.save_count += 1
