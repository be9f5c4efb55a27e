"""Reconciliation of source bookmarks against the bookmark store.

The manager owns the source and target collections of a run. It
computes which bookmarks were added to or removed from the sources and
decides which action every bookmark gets before processing starts.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from marksync.bookmarks.source import SourceBookmarks
from marksync.bookmarks.target import TargetBookmarks
from marksync.errors import ParseUrlError
from marksync.models import (
    UNDERLYING_PREFIX,
    Action,
    RunMode,
    SourceBookmark,
    SourceType,
    Status,
    TargetBookmark,
)
from marksync.urls import parse_url

if TYPE_CHECKING:
    from marksync.readers import SourceReader

logger = structlog.get_logger(__name__)


@dataclass
class RunConfig:
    """What a run should do with the bookmarks.

    Attributes:
        run_mode: Determines the default action of every bookmark.
        dry_run: Report actions without executing them.
        empty_cache: Whether the cache directory is empty.
        add_urls: Urls to add and fetch.
        remove_urls: Urls to remove.
        fetch_urls: Urls to fetch and replace in the cache.
        diff_urls: Urls to fetch and diff against the cache.
        ignored_urls: Urls which must not be kept.
    """

    run_mode: RunMode = RunMode.NONE
    dry_run: bool = False
    empty_cache: bool = False
    add_urls: list[str] = field(default_factory=list)
    remove_urls: list[str] = field(default_factory=list)
    fetch_urls: list[str] = field(default_factory=list)
    diff_urls: list[str] = field(default_factory=list)
    ignored_urls: list[str] = field(default_factory=list)


def _normalize_urls(urls: Iterable[str]) -> list[str]:
    normalized = []
    for url in urls:
        try:
            normalized.append(parse_url(url))
        except ParseUrlError as e:
            logger.warning("Skipping invalid url", url=url, error=str(e))
    return normalized


def _is_user_source(source: str) -> bool:
    return source == SourceType.INTERNAL.value or source.startswith(UNDERLYING_PREFIX)


class BookmarkManager:
    """Reconciles source bookmarks with the bookmark store."""

    def __init__(
        self,
        config: RunConfig | None = None,
        target_bookmarks: TargetBookmarks | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Run configuration.
            target_bookmarks: Bookmarks loaded from the store.
        """
        self.config = config or RunConfig()
        self.source_bookmarks = SourceBookmarks()
        if target_bookmarks is None:
            target_bookmarks = TargetBookmarks()
        self.target_bookmarks = target_bookmarks

    @property
    def is_dry_run(self) -> bool:
        """Whether the run has no side effects."""
        return self.config.dry_run

    def import_sources(self, readers: Iterable[SourceReader]) -> None:
        """Read bookmarks from all sources.

        Args:
            readers: Source readers to import from.
        """
        for reader in readers:
            before = len(self.source_bookmarks)
            reader.import_into(self.source_bookmarks)
            logger.debug(
                "Imported bookmarks",
                source=str(reader.path),
                count=len(self.source_bookmarks) - before,
            )

    def _normalized_sources(self) -> dict[str, SourceBookmark]:
        normalized: dict[str, SourceBookmark] = {}
        for source_bookmark in self.source_bookmarks:
            try:
                url = parse_url(source_bookmark.url)
            except ParseUrlError as e:
                logger.warning("Skipping invalid url", url=source_bookmark.url, error=str(e))
                continue

            existing = normalized.get(url)
            if existing is None:
                normalized[url] = source_bookmark.model_copy(deep=True, update={"url": url})
            else:
                existing.merge(source_bookmark)
        return normalized

    def add_bookmarks(
        self, now: int, sources: dict[str, SourceBookmark] | None = None
    ) -> list[str]:
        """Add source bookmarks which are missing in the store.

        New bookmarks get status ADDED and action FETCH_AND_ADD. Bookmarks
        already in the store keep their id; their source tags are refreshed.

        Args:
            now: Current timestamp in milliseconds.
            sources: Source bookmarks keyed by normalized url.

        Returns:
            Urls of the added bookmarks.
        """
        if sources is None:
            sources = self._normalized_sources()

        added: list[str] = []
        for url, source_bookmark in sources.items():
            existing = self.target_bookmarks.get(url)
            if existing is None:
                self.target_bookmarks.insert(
                    TargetBookmark.create(
                        url,
                        now,
                        sources=source_bookmark.sources,
                        status=Status.ADDED,
                        action=Action.FETCH_AND_ADD,
                    )
                )
                added.append(url)
            else:
                kept = {source for source in existing.sources if _is_user_source(source)}
                existing.sources = set(source_bookmark.sources) | kept
        return added

    def remove_bookmarks(self, sources: dict[str, SourceBookmark] | None = None) -> list[str]:
        """Mark bookmarks which are no longer in any source as removed.

        Bookmarks that were added on request or discovered on another page
        are kept, since no source file is their origin.

        Args:
            sources: Source bookmarks keyed by normalized url.

        Returns:
            Urls of the removed bookmarks.
        """
        if sources is None:
            sources = self._normalized_sources()

        removed: list[str] = []
        for bookmark in self.target_bookmarks:
            if bookmark.url in sources or bookmark.is_user_managed():
                continue
            if bookmark.status == Status.REMOVED:
                continue
            bookmark.status = Status.REMOVED
            bookmark.action = Action.REMOVE
            removed.append(bookmark.url)
        return removed

    def reconcile(self, now: int) -> tuple[list[str], list[str]]:
        """Compute the delta between the sources and the store.

        Args:
            now: Current timestamp in milliseconds.

        Returns:
            Tuple of (added urls, removed urls).
        """
        sources = self._normalized_sources()
        added = self.add_bookmarks(now, sources)
        removed = self.remove_bookmarks(sources)

        if added:
            logger.info("Added new bookmarks", count=len(added))
        if removed:
            logger.info("Removed bookmarks", count=len(removed))
        if not added and not removed:
            logger.info("Bookmarks are already up to date")
        return added, removed

    def add_urls(self, urls: Iterable[str], now: int) -> list[TargetBookmark]:
        """Add bookmarks on request.

        Args:
            urls: Urls to add.
            now: Current timestamp in milliseconds.

        Returns:
            Bookmarks in the store for the given urls.
        """
        bookmarks = []
        for url in _normalize_urls(urls):
            is_new = url not in self.target_bookmarks
            bookmark = self.target_bookmarks.upsert(
                TargetBookmark.create(
                    url,
                    now,
                    sources={SourceType.INTERNAL.value},
                    status=Status.ADDED if is_new else Status.NONE,
                    action=Action.FETCH_AND_ADD,
                )
            )
            bookmarks.append(bookmark)
        return bookmarks

    def remove_urls(self, urls: Iterable[str]) -> list[TargetBookmark]:
        """Mark bookmarks as removed on request.

        Args:
            urls: Urls to remove. Unknown urls are ignored.

        Returns:
            Bookmarks marked as removed.
        """
        removed = []
        for url in _normalize_urls(urls):
            bookmark = self.target_bookmarks.get(url)
            if bookmark is None:
                logger.warning("Can't remove unknown bookmark", url=url)
                continue
            bookmark.status = Status.REMOVED
            bookmark.action = Action.REMOVE
            removed.append(bookmark)
        return removed

    def set_actions(self, now: int) -> None:
        """Assign the action of every bookmark for this run.

        Later rules override earlier ones: the run mode default, removed
        bookmarks, explicit url requests, ignored urls and finally dry run.

        Args:
            now: Current timestamp in milliseconds.
        """
        config = self.config

        if config.run_mode != RunMode.NONE:
            self.target_bookmarks.set_action(config.run_mode.default_action)

        for bookmark in self.target_bookmarks.with_status(Status.REMOVED):
            bookmark.action = Action.REMOVE

        self.add_urls(config.add_urls, now)
        self.remove_urls(config.remove_urls)

        for url in _normalize_urls(config.fetch_urls):
            bookmark = self.target_bookmarks.get(url)
            if bookmark is None:
                self.target_bookmarks.insert(
                    TargetBookmark.create(
                        url,
                        now,
                        sources={SourceType.INTERNAL.value},
                        status=Status.ADDED,
                        action=Action.FETCH_AND_REPLACE,
                    )
                )
            else:
                bookmark.sources.add(SourceType.INTERNAL.value)
                bookmark.action = Action.FETCH_AND_REPLACE

        for url in _normalize_urls(config.diff_urls):
            bookmark = self.target_bookmarks.get(url)
            if bookmark is None:
                logger.warning("Can't diff unknown bookmark", url=url)
                continue
            bookmark.action = Action.FETCH_AND_DIFF

        for url in _normalize_urls(config.ignored_urls):
            bookmark = self.target_bookmarks.get(url)
            if bookmark is not None:
                bookmark.status = Status.REMOVED
                bookmark.action = Action.REMOVE

        if config.empty_cache:
            logger.debug("Cache is empty")
            self.target_bookmarks.reset_cache_status()

        if config.dry_run:
            self.target_bookmarks.set_action(Action.DRY_RUN)

    def added(self) -> list[TargetBookmark]:
        """Get bookmarks added in this run."""
        return self.target_bookmarks.with_status(Status.ADDED)

    def removed(self) -> list[TargetBookmark]:
        """Get bookmarks removed in this run."""
        return self.target_bookmarks.with_status(Status.REMOVED)

    def finish(self) -> int:
        """Delete bookmarks marked as removed from the store.

        Returns:
            Number of deleted bookmarks.
        """
        removed = self.removed()
        for bookmark in removed:
            self.target_bookmarks.remove(bookmark.url)
        return len(removed)
