"""File cache for fetched websites.

Every bookmark gets one file per cache mode, named after the bookmark
id: `{cache_dir}/{id}.{ext}`. Files of different bookmarks are
independent, so no locking is needed as long as a bookmark is processed
by one task at a time.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from marksync.content import convert
from marksync.errors import CacheError, CacheWriteError
from marksync.models import CacheMode, TargetBookmark

if TYPE_CHECKING:
    pass

logger = structlog.get_logger(__name__)

CACHE_SUFFIXES = {mode.suffix for mode in CacheMode}


class CacheProtocol(Protocol):
    """Protocol for cache implementations (for testing)."""

    mode: CacheMode

    def exists(self, bookmark: TargetBookmark) -> bool:
        """Check whether the website is cached in the active mode."""
        ...

    def get(self, bookmark: TargetBookmark) -> str | None:
        """Read the cached website, None if it isn't cached."""
        ...

    def add(self, html: str, bookmark: TargetBookmark) -> bool:
        """Cache a website unless it is cached already."""
        ...

    def replace(self, html: str, bookmark: TargetBookmark) -> str:
        """Cache a website, overwriting a cached version."""
        ...

    def remove(self, bookmark: TargetBookmark) -> None:
        """Remove the cached website in the active mode."""
        ...


class Cache:
    """Caches converted websites on disk."""

    def __init__(self, cache_dir: Path, mode: CacheMode = CacheMode.TEXT) -> None:
        """Initialize the cache.

        Args:
            cache_dir: Directory for cache files.
            mode: Representation to cache websites in.
        """
        self.cache_dir = cache_dir
        self.mode = mode

    def get_path(self, bookmark: TargetBookmark, mode: CacheMode | None = None) -> Path:
        """Get the cache file path of a bookmark.

        Args:
            bookmark: Bookmark to look up.
            mode: Cache mode. Uses the active mode if None.

        Returns:
            Path of the cache file, which may not exist.
        """
        mode = mode or self.mode
        return self.cache_dir / f"{bookmark.id}{mode.suffix}"

    def exists(self, bookmark: TargetBookmark) -> bool:
        """Check whether the website is cached in the active mode."""
        return self.get_path(bookmark).exists()

    def is_empty(self) -> bool:
        """Check whether the cache directory holds no files.

        Returns:
            True if the directory is missing or empty.
        """
        if not self.cache_dir.exists():
            return True
        try:
            return not any(self.cache_dir.iterdir())
        except OSError as e:
            raise CacheError(self.cache_dir, str(e)) from e

    def get(self, bookmark: TargetBookmark) -> str | None:
        """Read the cached website.

        A missing file is not an error: the website may be cached in a
        different mode or not at all.

        Args:
            bookmark: Bookmark to read.

        Returns:
            Cached content, None if there is no cache file.

        Raises:
            CacheError: If the cache directory or file can't be read.
        """
        if not self.cache_dir.exists():
            return None
        try:
            for path in self.cache_dir.iterdir():
                if path.stem == bookmark.id and path.suffix == self.mode.suffix:
                    return path.read_text(encoding="utf-8")
        except OSError as e:
            raise CacheError(self.cache_dir, str(e)) from e
        return None

    def _write(self, path: Path, content: str, file_mode: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            f = open(path, file_mode, encoding="utf-8")
        except FileExistsError:
            raise
        except OSError as e:
            raise CacheWriteError(path, str(e)) from e

        try:
            with f:
                f.write(content)
        except OSError as e:
            # A partial file would count as cached in later runs
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)
            raise CacheWriteError(path, str(e)) from e

    def add(self, html: str, bookmark: TargetBookmark) -> bool:
        """Cache a website unless it is cached already.

        Args:
            html: Filtered html of the website.
            bookmark: Bookmark the website belongs to.

        Returns:
            True if a file was written, False if it existed already.

        Raises:
            CacheWriteError: If the file can't be written.
        """
        path = self.get_path(bookmark)
        content = convert(html, self.mode)
        try:
            self._write(path, content, "x")
        except FileExistsError:
            logger.debug("Website is already cached", url=bookmark.url, path=str(path))
            return False

        bookmark.set_cached(self.mode)
        logger.debug("Added website to cache", url=bookmark.url, path=str(path))
        return True

    def replace(self, html: str, bookmark: TargetBookmark) -> str:
        """Cache a website, overwriting a cached version.

        Args:
            html: Filtered html of the website.
            bookmark: Bookmark the website belongs to.

        Returns:
            The content written to the cache.

        Raises:
            CacheWriteError: If the file can't be written.
        """
        path = self.get_path(bookmark)
        content = convert(html, self.mode)
        self._write(path, content, "w")

        bookmark.set_cached(self.mode)
        logger.debug("Replaced website in cache", url=bookmark.url, path=str(path))
        return content

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CacheError(path, str(e)) from e

    def remove(self, bookmark: TargetBookmark) -> None:
        """Remove the cached website in the active mode.

        Args:
            bookmark: Bookmark to remove from the cache.

        Raises:
            CacheError: If an existing file can't be deleted.
        """
        self._unlink(self.get_path(bookmark))
        bookmark.unset_cached(self.mode)
        logger.debug("Removed website from cache", url=bookmark.url)

    def remove_by_modes(self, bookmark: TargetBookmark) -> None:
        """Remove the cached website in every mode.

        Args:
            bookmark: Bookmark to remove from the cache.
        """
        for mode in CacheMode:
            self._unlink(self.get_path(bookmark, mode))
        bookmark.unset_cached()

    def clear(self, bookmarks: Iterable[TargetBookmark]) -> None:
        """Remove every cached website of the given bookmarks.

        Args:
            bookmarks: Bookmarks to remove from the cache.
        """
        for bookmark in bookmarks:
            self.remove_by_modes(bookmark)

    def remove_orphans(self, ids: set[str]) -> list[Path]:
        """Delete cache files which belong to no known bookmark.

        Args:
            ids: Ids of all bookmarks in the store.

        Returns:
            Paths of the deleted files.
        """
        if not self.cache_dir.exists():
            return []

        removed = []
        try:
            paths = list(self.cache_dir.iterdir())
        except OSError as e:
            raise CacheError(self.cache_dir, str(e)) from e

        for path in paths:
            if path.is_file() and path.suffix in CACHE_SUFFIXES and path.stem not in ids:
                self._unlink(path)
                removed.append(path)

        logger.debug("Removed orphaned cache files", count=len(removed))
        return removed


class MockCache:
    """In-memory cache for testing.

    Tracks the number of writes so tests can verify no-clobber behavior.
    """

    def __init__(self, mode: CacheMode = CacheMode.TEXT) -> None:
        """Initialize mock cache.

        Args:
            mode: Representation to cache websites in.
        """
        self.mode = mode
        self.files: dict[tuple[str, CacheMode], str] = {}
        self.write_count = 0

    def exists(self, bookmark: TargetBookmark) -> bool:
        """Check for a cached entry in the active mode."""
        return (bookmark.id, self.mode) in self.files

    def get(self, bookmark: TargetBookmark) -> str | None:
        """Return the cached entry."""
        return self.files.get((bookmark.id, self.mode))

    def add(self, html: str, bookmark: TargetBookmark) -> bool:
        """Store the converted html unless an entry exists."""
        if self.exists(bookmark):
            return False
        self.files[(bookmark.id, self.mode)] = convert(html, self.mode)
        self.write_count += 1
        bookmark.set_cached(self.mode)
        return True

    def replace(self, html: str, bookmark: TargetBookmark) -> str:
        """Store the converted html."""
        content = convert(html, self.mode)
        self.files[(bookmark.id, self.mode)] = content
        self.write_count += 1
        bookmark.set_cached(self.mode)
        return content

    def remove(self, bookmark: TargetBookmark) -> None:
        """Drop the cached entry."""
        self.files.pop((bookmark.id, self.mode), None)
        bookmark.unset_cached(self.mode)
