"""The canonical bookmark collection.

TargetBookmarks holds every bookmark marksync knows about, keyed by
normalized url, together with the bookkeeping needed to maintain the
cache.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

import structlog

from marksync.models import Action, Status, TargetBookmark

if TYPE_CHECKING:
    pass

logger = structlog.get_logger(__name__)


class TargetBookmarks:
    """Mapping of url to TargetBookmark.

    A url is stored at most once. The id of a bookmark never changes
    once it is in the collection.
    """

    def __init__(self, bookmarks: Iterable[TargetBookmark] = ()) -> None:
        """Initialize the collection.

        Args:
            bookmarks: Initial bookmarks. Later duplicates of a url win.
        """
        self._bookmarks: dict[str, TargetBookmark] = {}
        for bookmark in bookmarks:
            self.insert(bookmark)

    def insert(self, bookmark: TargetBookmark) -> None:
        """Insert a bookmark, replacing any bookmark with the same url.

        Args:
            bookmark: Bookmark to insert.
        """
        self._bookmarks[bookmark.url] = bookmark

    def upsert(self, bookmark: TargetBookmark) -> TargetBookmark:
        """Insert a bookmark or update the existing bookmark with the same url.

        An existing bookmark keeps its id, url and import timestamp. Its
        sources are extended, and status and action are taken from the
        new bookmark when they are set.

        Args:
            bookmark: Bookmark to insert or merge.

        Returns:
            The bookmark stored in the collection.
        """
        existing = self._bookmarks.get(bookmark.url)
        if existing is None:
            self._bookmarks[bookmark.url] = bookmark
            return bookmark

        existing.sources |= bookmark.sources
        if bookmark.status != Status.NONE:
            existing.status = bookmark.status
        if bookmark.action != Action.NONE:
            existing.action = bookmark.action
        return existing

    def get(self, url: str) -> TargetBookmark | None:
        """Get a bookmark by url."""
        return self._bookmarks.get(url)

    def get_by_id(self, bookmark_id: str) -> TargetBookmark | None:
        """Get a bookmark by id."""
        for bookmark in self._bookmarks.values():
            if bookmark.id == bookmark_id:
                return bookmark
        return None

    def remove(self, url: str) -> TargetBookmark | None:
        """Remove a bookmark by url.

        Args:
            url: Url of the bookmark.

        Returns:
            The removed bookmark, None if the url is unknown.
        """
        return self._bookmarks.pop(url, None)

    def set_action(self, action: Action) -> None:
        """Set the action of every bookmark.

        Args:
            action: Action to set.
        """
        for bookmark in self._bookmarks.values():
            bookmark.action = action

    def reset_cache_status(self) -> None:
        """Forget the cache state of every bookmark."""
        logger.debug("Resetting cache status", count=len(self._bookmarks))
        for bookmark in self._bookmarks.values():
            bookmark.unset_cached()

    def with_status(self, status: Status) -> list[TargetBookmark]:
        """Get all bookmarks with the given status."""
        return [bookmark for bookmark in self._bookmarks.values() if bookmark.status == status]

    def with_pending_action(self) -> list[TargetBookmark]:
        """Get all bookmarks that have an action to execute."""
        return [b for b in self._bookmarks.values() if b.action != Action.NONE]

    def ids(self) -> set[str]:
        """Get the ids of all bookmarks."""
        return {bookmark.id for bookmark in self._bookmarks.values()}

    def urls(self) -> list[str]:
        """Get all urls."""
        return list(self._bookmarks)

    def values(self) -> list[TargetBookmark]:
        """Get all bookmarks."""
        return list(self._bookmarks.values())

    def __contains__(self, url: object) -> bool:
        return url in self._bookmarks

    def __len__(self) -> int:
        return len(self._bookmarks)

    def __iter__(self) -> Iterator[TargetBookmark]:
        return iter(list(self._bookmarks.values()))
