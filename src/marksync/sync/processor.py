"""Concurrent execution of bookmark actions.

The processor runs the action of every bookmark as its own asyncio task,
with a fixed upper bound on the number of tasks in flight. Results are
handled in completion order. Errors that only concern a single website
are counted and logged; any other error stops the batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from marksync.cache import CacheProtocol
from marksync.client import ClientProtocol
from marksync.content import diff_lines, filter_html, select_underlying
from marksync.errors import (
    BinaryResponseError,
    CacheWriteError,
    ConvertError,
    ConvertHostError,
    EmptyResponseError,
    HttpResponseError,
    HttpStatusError,
    ParseHttpResponseError,
)
from marksync.models import (
    Action,
    BookmarkDiff,
    RunReport,
    Status,
    TargetBookmark,
    UnderlyingType,
    timestamp_ms,
    underlying_source,
)
from marksync.urls import try_parse_url

if TYPE_CHECKING:
    from marksync.bookmarks.target import TargetBookmarks

logger = structlog.get_logger(__name__)

# Type for progress callback: (current, total, message)
ProgressCallback = Callable[[int, int, str], None]

DEFAULT_MAX_CONCURRENT_REQUESTS = 100


class Outcome(str, Enum):
    """What happened to a bookmark whose action succeeded."""

    CACHED = "cached"
    DIFFED = "diffed"
    SKIPPED = "skipped"
    REMOVED = "removed"
    DRY_RUN = "dry_run"


class BookmarkProcessor:
    """Executes bookmark actions with bounded concurrency."""

    def __init__(
        self,
        client: ClientProtocol,
        cache: CacheProtocol,
        max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
        progress_callback: ProgressCallback | None = None,
        ignored_urls: Iterable[str] = (),
    ) -> None:
        """Initialize the processor.

        Args:
            client: Client to fetch websites with.
            cache: Cache to store websites in.
            max_concurrent_requests: Upper bound of bookmarks processed at once.
            progress_callback: Optional callback for progress updates.
            ignored_urls: Urls which are never added as underlying bookmarks.
        """
        if max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be at least 1")
        self.client = client
        self.cache = cache
        self.max_concurrent_requests = max_concurrent_requests
        self.progress_callback = progress_callback
        self.ignored_urls = {url for url in map(try_parse_url, ignored_urls) if url is not None}
        self.discover_underlying = True
        self.underlying_bookmarks: list[TargetBookmark] = []
        self._diffs: list[BookmarkDiff] = []

    def _scan_underlying(self, bookmark: TargetBookmark, html: str) -> None:
        if not self.discover_underlying or bookmark.underlying_url is not None:
            return
        if bookmark.underlying_type == UnderlyingType.NONE:
            return

        url = select_underlying(html, bookmark.underlying_type)
        if url is None:
            return

        logger.debug("Found underlying website", url=bookmark.url, underlying_url=url)
        bookmark.underlying_url = url
        self.underlying_bookmarks.append(
            TargetBookmark.create(
                url,
                timestamp_ms(),
                sources={underlying_source(bookmark.url)},
                status=Status.ADDED,
                action=Action.FETCH_AND_ADD,
            )
        )

    async def process_bookmark(self, bookmark: TargetBookmark) -> Outcome:
        """Execute the action of a single bookmark.

        Args:
            bookmark: Bookmark to process.

        Returns:
            Outcome of the action.
        """
        action = bookmark.action

        if action == Action.DRY_RUN:
            return Outcome.DRY_RUN

        if action == Action.REMOVE:
            self.cache.remove(bookmark)
            return Outcome.REMOVED

        if action == Action.FETCH_AND_ADD:
            if self.cache.exists(bookmark):
                return Outcome.SKIPPED
            html = await self.client.fetch(bookmark)
            self._scan_underlying(bookmark, html)
            self.cache.add(filter_html(html), bookmark)
            return Outcome.CACHED

        if action == Action.FETCH_AND_REPLACE:
            html = await self.client.fetch(bookmark)
            self._scan_underlying(bookmark, html)
            self.cache.replace(filter_html(html), bookmark)
            return Outcome.CACHED

        if action == Action.FETCH_AND_DIFF:
            previous = self.cache.get(bookmark)
            if previous is None:
                logger.info("Website is not cached, skipping diff", url=bookmark.url)
                return Outcome.SKIPPED
            html = await self.client.fetch(bookmark)
            current = self.cache.replace(filter_html(html), bookmark)
            self._diffs.append(BookmarkDiff(url=bookmark.url, lines=diff_lines(previous, current)))
            return Outcome.DIFFED

        return Outcome.SKIPPED

    def _handle_error(self, error: Exception, bookmark: TargetBookmark, report: RunReport) -> bool:
        """Count an error that only concerns one bookmark.

        Returns:
            False if the error is fatal for the run.
        """
        log = logger.bind(url=bookmark.url, error=str(error))

        if isinstance(error, HttpResponseError):
            if "Too many open files" in str(error):
                log.warning("Can't fetch website")
            else:
                log.debug("Can't fetch website")
            report.failed_response += 1
        elif isinstance(error, (HttpStatusError, ParseHttpResponseError)):
            log.debug("Can't fetch website")
            report.failed_response += 1
        elif isinstance(error, (ConvertHostError, CacheWriteError, ConvertError)):
            log.warning("Can't cache website")
            report.failed_response += 1
        elif isinstance(error, BinaryResponseError):
            log.debug("Ignoring binary website")
            report.binary_response += 1
        elif isinstance(error, EmptyResponseError):
            log.debug("Ignoring empty website")
            report.empty_response += 1
        else:
            return False
        return True

    def _handle_success(
        self, outcome: Outcome, bookmark: TargetBookmark, report: RunReport
    ) -> None:
        if outcome in (Outcome.CACHED, Outcome.DIFFED):
            report.cached += 1
        if bookmark.action != Action.DRY_RUN:
            bookmark.action = Action.NONE

    async def process_bookmarks(
        self,
        bookmarks: Iterable[TargetBookmark],
        report: RunReport | None = None,
    ) -> RunReport:
        """Execute the actions of all bookmarks.

        At most max_concurrent_requests bookmarks are processed at once.
        After a fatal error no further bookmarks are started; bookmarks in
        flight finish before the error is raised.

        Args:
            bookmarks: Bookmarks to process. Bookmarks without action are skipped.
            report: Report to add the results to. A new one is created if None.

        Returns:
            The updated report.
        """
        if report is None:
            report = RunReport()

        pending = [bookmark for bookmark in bookmarks if bookmark.action != Action.NONE]
        total = len(pending)
        report.total += total
        logger.debug("Processing bookmarks", count=total)

        queue = iter(pending)
        in_flight: dict[asyncio.Task[Outcome], TargetBookmark] = {}
        fatal_error: Exception | None = None
        completed = 0

        def schedule() -> None:
            while len(in_flight) < self.max_concurrent_requests:
                bookmark = next(queue, None)
                if bookmark is None:
                    return
                in_flight[asyncio.create_task(self.process_bookmark(bookmark))] = bookmark

        schedule()
        while in_flight:
            done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                bookmark = in_flight.pop(task)
                completed += 1
                try:
                    outcome = task.result()
                except Exception as e:
                    if not self._handle_error(e, bookmark, report):
                        logger.error("Processing failed", url=bookmark.url, error=str(e))
                        fatal_error = fatal_error or e
                        continue
                else:
                    self._handle_success(outcome, bookmark, report)

                report.processed += 1
                if self.progress_callback:
                    self.progress_callback(completed, total, f"Processed {bookmark.url}")

            if fatal_error is None:
                schedule()

        report.diffs.extend(self._diffs)
        self._diffs = []

        if fatal_error is not None:
            raise fatal_error
        return report

    async def process_underlyings(
        self,
        target_bookmarks: TargetBookmarks,
        report: RunReport | None = None,
    ) -> RunReport:
        """Fetch the underlying websites found in the previous pass.

        Discovered bookmarks that are neither in the store nor ignored are
        added and processed once. No further underlying websites are discovered in
        this pass.

        Args:
            target_bookmarks: Bookmark store to add discovered bookmarks to.
            report: Report to add the results to. A new one is created if None.

        Returns:
            The updated report.
        """
        if report is None:
            report = RunReport()

        discovered = self.underlying_bookmarks
        self.underlying_bookmarks = []

        new_bookmarks = []
        for bookmark in discovered:
            if bookmark.url in target_bookmarks:
                continue
            if bookmark.url in self.ignored_urls:
                logger.debug("Skipping ignored underlying website", url=bookmark.url)
                continue
            target_bookmarks.insert(bookmark)
            new_bookmarks.append(bookmark)

        if not new_bookmarks:
            return report

        logger.debug("Processing underlying bookmarks", count=len(new_bookmarks))
        self.discover_underlying = False
        try:
            return await self.process_bookmarks(new_bookmarks, report)
        finally:
            self.discover_underlying = True
