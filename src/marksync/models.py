"""Domain models for bookmarks, actions and run reports.

This module contains the typed models shared by the reconciler, the
cache, the processor and the bookmark store.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    pass

HACKER_NEWS_DOMAINS = ("news.ycombinator.com", "www.news.ycombinator.com")
REDDIT_DOMAINS = ("reddit.com", "www.reddit.com")

UNDERLYING_PREFIX = "underlying:"


def timestamp_ms(moment: datetime | None = None) -> int:
    """Convert a datetime to a UTC timestamp in milliseconds.

    Args:
        moment: Point in time. Uses the current time if None.

    Returns:
        Milliseconds since the epoch.
    """
    if moment is None:
        moment = datetime.now(UTC)
    return int(moment.timestamp() * 1000)


class CacheMode(str, Enum):
    """Representation used for cached websites.

    Attributes:
        HTML: Filtered html as fetched.
        MARKDOWN: Html converted to markdown.
        TEXT: Main text content extracted from the html.
    """

    HTML = "html"
    MARKDOWN = "markdown"
    TEXT = "text"

    @property
    def extension(self) -> str:
        """File extension of cache files in this mode."""
        return {"html": "html", "markdown": "md", "text": "txt"}[self.value]

    @property
    def suffix(self) -> str:
        """File suffix including the leading dot."""
        return f".{self.extension}"


class Status(str, Enum):
    """Delta classification of a bookmark for the current run."""

    NONE = "none"
    ADDED = "added"
    REMOVED = "removed"


class Action(str, Enum):
    """Pending operation for a bookmark in the current run.

    Attributes:
        NONE: Nothing to do.
        FETCH_AND_ADD: Fetch and cache the website unless it is cached already.
        FETCH_AND_REPLACE: Fetch and overwrite the cached website.
        FETCH_AND_DIFF: Fetch, overwrite and report the changes to the cached website.
        REMOVE: Remove the cached website; the bookmark is dropped at finish.
        DRY_RUN: Report only, without side effects.
    """

    NONE = "none"
    FETCH_AND_ADD = "fetch_and_add"
    FETCH_AND_REPLACE = "fetch_and_replace"
    FETCH_AND_DIFF = "fetch_and_diff"
    REMOVE = "remove"
    DRY_RUN = "dry_run"


class SourceType(str, Enum):
    """Where a bookmark came from."""

    FIREFOX = "firefox"
    CHROMIUM = "chromium"
    CHROME = "chrome"
    EDGE = "edge"
    CHROMIUM_FAMILY = "chromium_family"
    SAFARI = "safari"
    SIMPLE = "simple"
    INTERNAL = "internal"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


def underlying_source(url: str) -> str:
    """Build the provenance tag of a bookmark discovered on another page.

    Args:
        url: Url of the page the bookmark was discovered on.

    Returns:
        Source tag.
    """
    return f"{UNDERLYING_PREFIX}{url}"


class UnderlyingType(str, Enum):
    """Kind of link aggregator a bookmark points to."""

    HACKER_NEWS = "hacker_news"
    REDDIT = "reddit"
    NONE = "none"

    @classmethod
    def from_url(cls, url: str) -> UnderlyingType:
        """Classify a url by its host.

        Args:
            url: Absolute url.

        Returns:
            The matching aggregator type, NONE otherwise.
        """
        host = (urlsplit(url).hostname or "").lower()
        if host in HACKER_NEWS_DOMAINS:
            return cls.HACKER_NEWS
        if host in REDDIT_DOMAINS:
            return cls.REDDIT
        return cls.NONE


class RunMode(str, Enum):
    """Default action assigned to every bookmark before explicit requests.

    Attributes:
        IMPORT: Only import bookmarks, don't fetch.
        FETCH: Fetch bookmarks which are not cached yet.
        FETCH_ALL: Fetch all bookmarks and replace the cache.
        UPDATE: Import, then fetch bookmarks which are not cached yet.
        NONE: Only act on explicitly requested urls.
    """

    IMPORT = "import"
    FETCH = "fetch"
    FETCH_ALL = "fetch_all"
    UPDATE = "update"
    NONE = "none"

    @property
    def default_action(self) -> Action:
        """Action assigned to every bookmark in this run mode."""
        if self in (RunMode.FETCH, RunMode.UPDATE):
            return Action.FETCH_AND_ADD
        if self == RunMode.FETCH_ALL:
            return Action.FETCH_AND_REPLACE
        return Action.NONE


class SourceBookmark(BaseModel):
    """A bookmark as found by one or more source readers.

    Attributes:
        url: Url as written in the source, not validated yet.
        sources: Source types or tags the url was found in.
        folders: Pairs of (source, folder) the url was found below.
    """

    url: str = Field(..., description="Url as found in the source")
    sources: set[str] = Field(default_factory=set, description="Provenance tags")
    folders: set[tuple[str, str]] = Field(default_factory=set, description="Source folders")

    def merge(self, other: SourceBookmark) -> None:
        """Union the provenance of another bookmark with the same url.

        Args:
            other: Bookmark to merge into this one.
        """
        self.sources |= other.sources
        self.folders |= other.folders


class TargetBookmark(BaseModel):
    """A bookmark in the canonical store.

    Attributes:
        id: Stable identifier, used to name cache files.
        url: Normalized url, unique in the store.
        underlying_url: Article linked from an aggregator page.
        underlying_type: Aggregator classification of the url.
        last_imported: When the bookmark was first imported (ms).
        last_cached: When the website was last cached (ms), None if never.
        sources: Provenance tags.
        cache_modes: Cache modes the website is currently cached in.
        status: Delta classification for the current run (not persisted).
        action: Pending action for the current run (not persisted).
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Bookmark id")
    url: str = Field(..., description="Normalized url")
    underlying_url: str | None = Field(None, description="Underlying article url")
    underlying_type: UnderlyingType = Field(UnderlyingType.NONE, description="Aggregator type")
    last_imported: int = Field(default_factory=timestamp_ms, description="Import timestamp (ms)")
    last_cached: int | None = Field(None, description="Cache timestamp (ms)")
    sources: set[str] = Field(default_factory=set, description="Provenance tags")
    cache_modes: set[CacheMode] = Field(default_factory=set, description="Cached modes")
    status: Status = Field(Status.NONE, exclude=True, description="Run status")
    action: Action = Field(Action.NONE, exclude=True, description="Run action")

    @classmethod
    def create(
        cls,
        url: str,
        now: int,
        sources: set[str] | None = None,
        status: Status = Status.NONE,
        action: Action = Action.NONE,
    ) -> TargetBookmark:
        """Create a new bookmark with a fresh id.

        Args:
            url: Normalized url.
            now: Import timestamp in milliseconds.
            sources: Provenance tags.
            status: Initial status.
            action: Initial action.

        Returns:
            New TargetBookmark.
        """
        return cls(
            url=url,
            underlying_type=UnderlyingType.from_url(url),
            last_imported=now,
            sources=set(sources or ()),
            status=status,
            action=action,
        )

    def set_cached(self, mode: CacheMode, now: int | None = None) -> None:
        """Record a successful cache write.

        Args:
            mode: Cache mode that was written.
            now: Timestamp in milliseconds. Uses the current time if None.
        """
        self.last_cached = timestamp_ms() if now is None else now
        self.cache_modes.add(mode)

    def unset_cached(self, mode: CacheMode | None = None) -> None:
        """Forget cached content for one or all modes.

        Args:
            mode: Cache mode that was removed. Removes all if None.
        """
        if mode is None:
            self.cache_modes.clear()
        else:
            self.cache_modes.discard(mode)
        if not self.cache_modes:
            self.last_cached = None

    def is_user_managed(self) -> bool:
        """Check whether every source is an explicit request or a discovery.

        Such bookmarks have no source file as origin, so an import must not
        remove them.
        """
        return bool(self.sources) and all(
            source == SourceType.INTERNAL.value or source.startswith(UNDERLYING_PREFIX)
            for source in self.sources
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize the persisted fields in a stable order.

        Returns:
            JSON-compatible dict.
        """
        record: dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "last_imported": self.last_imported,
            "last_cached": self.last_cached,
            "sources": sorted(self.sources),
            "cache_modes": sorted(mode.value for mode in self.cache_modes),
        }
        if self.underlying_url is not None:
            record["underlying_url"] = self.underlying_url
        if self.underlying_type != UnderlyingType.NONE:
            record["underlying_type"] = self.underlying_type.value
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> TargetBookmark:
        """Deserialize a persisted record.

        Args:
            record: Dict as produced by to_record.

        Returns:
            TargetBookmark with status and action NONE.
        """
        return cls.model_validate(record)


class DiffTag(str, Enum):
    """Classification of a line in a diff."""

    INSERT = "insert"
    DELETE = "delete"
    EQUAL = "equal"


class DiffLine(BaseModel):
    """A single line of a diff."""

    model_config = ConfigDict(frozen=True)

    tag: DiffTag
    line: str


class BookmarkDiff(BaseModel):
    """Changes between the cached and the fetched version of a website."""

    url: str
    lines: list[DiffLine] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Whether any line was inserted or deleted."""
        return any(line.tag != DiffTag.EQUAL for line in self.lines)


class RunReport(BaseModel):
    """Result of a run.

    Attributes:
        total: Bookmarks scheduled for processing.
        processed: Bookmarks whose action completed, successfully or not.
        cached: Websites fetched and cached.
        failed_response: Websites which couldn't be fetched or cached.
        binary_response: Websites skipped for binary content.
        empty_response: Websites skipped for an empty body.
        added: Bookmarks added by this run.
        removed: Bookmarks removed by this run.
        dry_run: Whether the run had no side effects.
        diffs: Changes found by diff actions.
    """

    total: int = 0
    processed: int = 0
    cached: int = 0
    failed_response: int = 0
    binary_response: int = 0
    empty_response: int = 0
    added: int = 0
    removed: int = 0
    dry_run: bool = False
    diffs: list[BookmarkDiff] = Field(default_factory=list)

    @property
    def ignored(self) -> int:
        """Websites skipped because their content can't be cached."""
        return self.binary_response + self.empty_response

    def summary(self) -> str:
        """Render a one-line summary of the run.

        Returns:
            Human readable summary.
        """
        if self.dry_run:
            return f"Processed {self.processed} bookmarks (dry run)"
        return (
            f"Processed {self.processed} bookmarks, {self.cached} cached, "
            f"{self.ignored} ignored, {self.failed_response} failed"
        )
