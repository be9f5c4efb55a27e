"""Tests for concurrent bookmark processing.

This module tests action execution, error isolation, the concurrency
limit and the discovery of underlying websites.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from marksync.bookmarks import TargetBookmarks
from marksync.cache import MockCache
from marksync.client import MockClient
from marksync.errors import (
    BinaryResponseError,
    CacheError,
    EmptyResponseError,
    HttpResponseError,
)
from marksync.models import (
    Action,
    CacheMode,
    DiffTag,
    RunReport,
    Status,
    TargetBookmark,
    UnderlyingType,
    underlying_source,
)
from marksync.sync.processor import BookmarkProcessor, Outcome

if TYPE_CHECKING:
    pass

NOW = 1_700_000_000_000

HTML = "<html><body><p>Hello world</p></body></html>"

HN_ITEM = "https://news.ycombinator.com/item?id=42"
HN_HTML = (
    '<html><body><span class="titleline"><a href="https://article.com/post">Post</a></span>'
    "<p>Discussion</p></body></html>"
)


def _bookmark(url: str, action: Action = Action.FETCH_AND_ADD) -> TargetBookmark:
    return TargetBookmark.create(url, NOW, sources={"firefox"}, action=action)


class BrokenCache(MockCache):
    """Cache whose directory can't be accessed."""

    def add(self, html: str, bookmark: TargetBookmark) -> bool:
        raise CacheError("/cache", "permission denied")


class TestProcessBookmark:
    """Tests for single bookmark actions."""

    @pytest.mark.asyncio
    async def test_fetch_and_add(self) -> None:
        """Test that an uncached website is fetched and cached."""
        bookmark = _bookmark("https://a.com/")
        cache = MockCache(CacheMode.HTML)
        processor = BookmarkProcessor(MockClient({"https://a.com/": HTML}), cache)

        outcome = await processor.process_bookmark(bookmark)

        assert outcome == Outcome.CACHED
        assert cache.get(bookmark) == HTML
        assert bookmark.cache_modes == {CacheMode.HTML}

    @pytest.mark.asyncio
    async def test_fetch_and_add_skips_cached(self) -> None:
        """Test that cached websites are not fetched again."""
        bookmark = _bookmark("https://a.com/")
        cache = MockCache(CacheMode.HTML)
        cache.add("<p>old</p>", bookmark)
        client = MockClient({"https://a.com/": HTML})
        processor = BookmarkProcessor(client, cache)

        outcome = await processor.process_bookmark(bookmark)

        assert outcome == Outcome.SKIPPED
        assert client.fetched == []
        assert cache.get(bookmark) == "<p>old</p>"

    @pytest.mark.asyncio
    async def test_fetch_and_replace(self) -> None:
        """Test that replace overwrites the cached website."""
        bookmark = _bookmark("https://a.com/", Action.FETCH_AND_REPLACE)
        cache = MockCache(CacheMode.HTML)
        cache.add("<p>old</p>", bookmark)
        processor = BookmarkProcessor(MockClient({"https://a.com/": HTML}), cache)

        outcome = await processor.process_bookmark(bookmark)

        assert outcome == Outcome.CACHED
        assert cache.get(bookmark) == HTML

    @pytest.mark.asyncio
    async def test_remove(self) -> None:
        """Test that remove drops the cached website without fetching."""
        bookmark = _bookmark("https://a.com/", Action.REMOVE)
        cache = MockCache()
        cache.add(HTML, bookmark)
        client = MockClient()
        processor = BookmarkProcessor(client, cache)

        outcome = await processor.process_bookmark(bookmark)

        assert outcome == Outcome.REMOVED
        assert not cache.exists(bookmark)
        assert client.fetched == []

    @pytest.mark.asyncio
    async def test_dry_run(self) -> None:
        """Test that dry runs have no side effects."""
        bookmark = _bookmark("https://a.com/", Action.DRY_RUN)
        cache = MockCache()
        client = MockClient({"https://a.com/": HTML})
        processor = BookmarkProcessor(client, cache)

        outcome = await processor.process_bookmark(bookmark)

        assert outcome == Outcome.DRY_RUN
        assert client.fetched == []
        assert cache.write_count == 0

    @pytest.mark.asyncio
    async def test_diff(self) -> None:
        """Test that diffs compare the cached and the fetched version."""
        bookmark = _bookmark("https://a.com/", Action.FETCH_AND_DIFF)
        cache = MockCache(CacheMode.TEXT)
        cache.add("<p>Hello</p><p>old line</p>", bookmark)
        html = "<p>Hello</p><p>new line</p>"
        processor = BookmarkProcessor(MockClient({"https://a.com/": html}), cache)

        report = await processor.process_bookmarks([bookmark])

        assert report.cached == 1
        assert len(report.diffs) == 1
        diff = report.diffs[0]
        assert diff.url == "https://a.com/"
        assert ("old line", DiffTag.DELETE) in [(line.line, line.tag) for line in diff.lines]
        assert ("new line", DiffTag.INSERT) in [(line.line, line.tag) for line in diff.lines]
        assert cache.get(bookmark) == "Hello\nnew line"

    @pytest.mark.asyncio
    async def test_diff_without_cache_is_skipped(self) -> None:
        """Test that diffs of uncached websites are skipped."""
        bookmark = _bookmark("https://a.com/", Action.FETCH_AND_DIFF)
        client = MockClient({"https://a.com/": HTML})
        processor = BookmarkProcessor(client, MockCache())

        outcome = await processor.process_bookmark(bookmark)

        assert outcome == Outcome.SKIPPED
        assert client.fetched == []


class TestProcessBookmarks:
    """Tests for batch processing."""

    def test_rejects_invalid_limit(self) -> None:
        """Test that the concurrency limit must be positive."""
        with pytest.raises(ValueError):
            BookmarkProcessor(MockClient(), MockCache(), max_concurrent_requests=0)

    @pytest.mark.asyncio
    async def test_respects_concurrency_limit(self) -> None:
        """Test that no more than the limit is fetched at once."""
        urls = [f"https://site{i}.com/" for i in range(12)]
        client = MockClient({url: HTML for url in urls}, delay=0.01)
        processor = BookmarkProcessor(client, MockCache(), max_concurrent_requests=3)

        report = await processor.process_bookmarks([_bookmark(url) for url in urls])

        assert report.processed == 12
        assert report.cached == 12
        assert client.peak_active == 3

    @pytest.mark.asyncio
    async def test_skips_bookmarks_without_action(self) -> None:
        """Test that only bookmarks with an action are processed."""
        client = MockClient({"https://a.com/": HTML, "https://b.com/": HTML})
        processor = BookmarkProcessor(client, MockCache())

        report = await processor.process_bookmarks(
            [_bookmark("https://a.com/"), _bookmark("https://b.com/", Action.NONE)]
        )

        assert report.total == 1
        assert client.fetched == ["https://a.com/"]

    @pytest.mark.asyncio
    async def test_isolates_failures(self) -> None:
        """Test that failing websites don't affect the others."""
        bookmarks = [
            _bookmark("https://ok.com/"),
            _bookmark("https://missing.com/"),
            _bookmark("https://down.com/"),
            _bookmark("https://binary.com/"),
            _bookmark("https://empty.com/"),
        ]
        client = MockClient(
            {
                "https://ok.com/": HTML,
                "https://down.com/": HttpResponseError("https://down.com/", "timed out"),
                "https://binary.com/": BinaryResponseError("https://binary.com/"),
                "https://empty.com/": EmptyResponseError("https://empty.com/"),
            }
        )
        processor = BookmarkProcessor(client, MockCache())

        report = await processor.process_bookmarks(bookmarks)

        assert report.processed == 5
        assert report.cached == 1
        assert report.failed_response == 2
        assert report.binary_response == 1
        assert report.empty_response == 1
        assert report.ignored == 2

    @pytest.mark.asyncio
    async def test_clears_completed_actions(self) -> None:
        """Test that successful actions are reset, failed ones kept."""
        ok = _bookmark("https://ok.com/")
        failed = _bookmark("https://missing.com/")
        processor = BookmarkProcessor(MockClient({"https://ok.com/": HTML}), MockCache())

        await processor.process_bookmarks([ok, failed])

        assert ok.action == Action.NONE
        assert failed.action == Action.FETCH_AND_ADD

    @pytest.mark.asyncio
    async def test_dry_run_keeps_action(self) -> None:
        """Test that dry runs neither fetch nor reset actions."""
        bookmark = _bookmark("https://a.com/", Action.DRY_RUN)
        client = MockClient({"https://a.com/": HTML})
        processor = BookmarkProcessor(client, MockCache())

        report = await processor.process_bookmarks([bookmark])

        assert report.processed == 1
        assert report.cached == 0
        assert bookmark.action == Action.DRY_RUN
        assert client.fetched == []

    @pytest.mark.asyncio
    async def test_fatal_error_stops_batch(self) -> None:
        """Test that unexpected errors abort after in-flight work finishes."""
        urls = [f"https://site{i}.com/" for i in range(10)]
        client = MockClient({url: HTML for url in urls}, delay=0.01)
        processor = BookmarkProcessor(client, BrokenCache(), max_concurrent_requests=2)

        with pytest.raises(CacheError):
            await processor.process_bookmarks([_bookmark(url) for url in urls])

        assert len(client.fetched) == 2
        assert client.active == 0

    @pytest.mark.asyncio
    async def test_reports_progress(self) -> None:
        """Test that progress is reported per completed bookmark."""
        calls: list[tuple[int, int]] = []
        client = MockClient({"https://a.com/": HTML, "https://b.com/": HTML})
        processor = BookmarkProcessor(
            client,
            MockCache(),
            progress_callback=lambda current, total, message: calls.append((current, total)),
        )

        await processor.process_bookmarks(
            [_bookmark("https://a.com/"), _bookmark("https://b.com/")]
        )

        assert calls == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_adds_to_existing_report(self) -> None:
        """Test that results are added to a given report."""
        report = RunReport(processed=3, cached=1)
        processor = BookmarkProcessor(MockClient({"https://a.com/": HTML}), MockCache())

        result = await processor.process_bookmarks([_bookmark("https://a.com/")], report)

        assert result is report
        assert report.processed == 4
        assert report.cached == 2


class TestUnderlying:
    """Tests for underlying website discovery."""

    @pytest.mark.asyncio
    async def test_discovers_and_fetches_underlying(self) -> None:
        """Test that aggregator links are added and fetched in a second pass."""
        item = _bookmark(HN_ITEM)
        assert item.underlying_type == UnderlyingType.HACKER_NEWS
        target = TargetBookmarks([item])
        client = MockClient({HN_ITEM: HN_HTML, "https://article.com/post": HTML})
        processor = BookmarkProcessor(client, MockCache())

        report = await processor.process_bookmarks(target.values())
        await processor.process_underlyings(target, report)

        assert item.underlying_url == "https://article.com/post"
        article = target.get("https://article.com/post")
        assert article is not None
        assert article.status == Status.ADDED
        assert article.sources == {underlying_source(HN_ITEM)}
        assert article.cache_modes == {CacheMode.TEXT}
        assert client.fetched == [HN_ITEM, "https://article.com/post"]
        assert report.cached == 2

    @pytest.mark.asyncio
    async def test_known_underlying_is_not_refetched(self) -> None:
        """Test that discovered urls already in the store are left alone."""
        item = _bookmark(HN_ITEM)
        existing = _bookmark("https://article.com/post", Action.NONE)
        target = TargetBookmarks([item, existing])
        client = MockClient({HN_ITEM: HN_HTML, "https://article.com/post": HTML})
        processor = BookmarkProcessor(client, MockCache())

        report = await processor.process_bookmarks([item])
        await processor.process_underlyings(target, report)

        assert target.get("https://article.com/post") is existing
        assert client.fetched == [HN_ITEM]

    @pytest.mark.asyncio
    async def test_underlying_scanned_once(self) -> None:
        """Test that bookmarks with known underlying url are not scanned again."""
        item = _bookmark(HN_ITEM, Action.FETCH_AND_REPLACE)
        item.underlying_url = "https://old.com/"
        target = TargetBookmarks([item])
        processor = BookmarkProcessor(MockClient({HN_ITEM: HN_HTML}), MockCache())

        await processor.process_bookmarks([item])
        await processor.process_underlyings(target)

        assert item.underlying_url == "https://old.com/"
        assert len(target) == 1

    @pytest.mark.asyncio
    async def test_ignored_underlying_is_skipped(self) -> None:
        """Test that ignored urls are not added as underlying bookmarks."""
        item = _bookmark(HN_ITEM)
        target = TargetBookmarks([item])
        client = MockClient({HN_ITEM: HN_HTML, "https://article.com/post": HTML})
        processor = BookmarkProcessor(
            client, MockCache(), ignored_urls=["HTTPS://Article.com/post"]
        )

        report = await processor.process_bookmarks(target.values())
        await processor.process_underlyings(target, report)

        assert item.underlying_url == "https://article.com/post"
        assert "https://article.com/post" not in target
        assert client.fetched == [HN_ITEM]
        assert report.cached == 1
