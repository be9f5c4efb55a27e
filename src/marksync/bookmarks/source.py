"""Bookmarks collected from the configured sources."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from marksync.models import SourceBookmark

if TYPE_CHECKING:
    pass


class SourceBookmarks:
    """Deduplicating collection of source bookmarks keyed by url.

    Several readers may report the same url. Their sources and folders
    are merged into a single entry.
    """

    def __init__(self) -> None:
        """Initialize an empty collection."""
        self._bookmarks: dict[str, SourceBookmark] = {}

    def insert(self, bookmark: SourceBookmark) -> None:
        """Insert a bookmark, merging it into an existing entry with the same url.

        Args:
            bookmark: Bookmark to insert.
        """
        existing = self._bookmarks.get(bookmark.url)
        if existing is None:
            self._bookmarks[bookmark.url] = bookmark.model_copy(deep=True)
        else:
            existing.merge(bookmark)

    def add(self, url: str, source: str, folder: str | None = None) -> None:
        """Record a url found by a reader.

        Args:
            url: Url as found in the source. Blank urls are ignored.
            source: Source type or tag.
            folder: Folder the url was found below, if any.
        """
        url = url.strip()
        if not url:
            return
        folders = {(source, folder)} if folder else set()
        self.insert(SourceBookmark(url=url, sources={source}, folders=folders))

    def get(self, url: str) -> SourceBookmark | None:
        """Get a bookmark by url."""
        return self._bookmarks.get(url)

    def urls(self) -> list[str]:
        """Get all urls."""
        return list(self._bookmarks)

    def values(self) -> list[SourceBookmark]:
        """Get all bookmarks."""
        return list(self._bookmarks.values())

    def __contains__(self, url: object) -> bool:
        return url in self._bookmarks

    def __len__(self) -> int:
        return len(self._bookmarks)

    def __iter__(self) -> Iterator[SourceBookmark]:
        return iter(list(self._bookmarks.values()))
