"""Run orchestration service.

This module coordinates a run: the bookmark store is loaded, sources
are imported and reconciled, actions are assigned and executed, and the
store is written back.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from marksync.bookmarks.manager import BookmarkManager, RunConfig
from marksync.cache import CacheProtocol
from marksync.client import ClientProtocol
from marksync.models import RunMode, RunReport, timestamp_ms
from marksync.store import BookmarkStore
from marksync.sync.processor import (
    DEFAULT_MAX_CONCURRENT_REQUESTS,
    BookmarkProcessor,
    ProgressCallback,
)

if TYPE_CHECKING:
    from marksync.readers import SourceReader

logger = structlog.get_logger(__name__)


class BookmarkService:
    """Orchestrates a marksync run.

    A run:
    1. Loads the bookmark store
    2. Imports the sources and reconciles them with the store (import and update runs)
    3. Assigns an action to every bookmark
    4. Executes the actions, then fetches discovered underlying websites
    5. Drops removed bookmarks and saves the store, unless it is a dry run
    """

    def __init__(
        self,
        config: RunConfig,
        client: ClientProtocol,
        cache: CacheProtocol,
        store: BookmarkStore,
        max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
    ) -> None:
        """Initialize the service.

        Args:
            config: What the run should do.
            client: Client to fetch websites with.
            cache: Cache to store websites in.
            store: Persistent bookmark store.
            max_concurrent_requests: Upper bound of bookmarks processed at once.
        """
        self.config = config
        self.client = client
        self.cache = cache
        self.store = store
        self.max_concurrent_requests = max_concurrent_requests

    async def run(
        self,
        readers: Sequence[SourceReader] = (),
        progress_callback: ProgressCallback | None = None,
        now: int | None = None,
    ) -> RunReport:
        """Run the service.

        Args:
            readers: Source readers to import from.
            progress_callback: Optional callback for progress updates.
            now: Current timestamp in milliseconds. Uses the current time if None.

        Returns:
            RunReport with statistics.
        """
        if now is None:
            now = timestamp_ms()
        report = RunReport(dry_run=self.config.dry_run)

        target_bookmarks = self.store.load()
        manager = BookmarkManager(self.config, target_bookmarks)

        if self.config.run_mode in (RunMode.IMPORT, RunMode.UPDATE):
            if readers:
                manager.import_sources(readers)
                manager.reconcile(now)
            else:
                logger.warning("No bookmark sources configured, skipping import")

        manager.set_actions(now)

        processor = BookmarkProcessor(
            self.client,
            self.cache,
            max_concurrent_requests=self.max_concurrent_requests,
            progress_callback=progress_callback,
            ignored_urls=self.config.ignored_urls,
        )
        await processor.process_bookmarks(target_bookmarks.values(), report)
        await processor.process_underlyings(target_bookmarks, report)

        report.added = len(manager.added())
        report.removed = len(manager.removed())
        logger.info(report.summary(), added=report.added, removed=report.removed)

        if manager.is_dry_run:
            return report

        manager.finish()
        self.store.save(target_bookmarks)
        return report
