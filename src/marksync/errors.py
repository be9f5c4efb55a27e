"""Exception hierarchy for marksync.

Errors fall in three groups. Fetch errors and cache write errors are
transient and only affect a single bookmark, so the processor counts
them and moves on. Malformed urls and records are skipped by whoever
finds them. Everything else aborts the run.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    pass


class MarksyncError(Exception):
    """Base class for all marksync errors."""


class ConfigError(MarksyncError):
    """Raised when the configuration can't be loaded or written."""


class ParseUrlError(MarksyncError):
    """Raised when a string is not an absolute http(s)-style url."""

    def __init__(self, url: str, reason: str = "invalid url") -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Can't parse url '{url}': {reason}")


class ConvertHostError(MarksyncError):
    """Raised when the host of a url can't be determined."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Can't get host for url: {url}")


class FetchError(MarksyncError):
    """Base class for errors that happen while fetching a single website."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(message)


class HttpResponseError(FetchError):
    """Raised when the request fails on the transport level."""

    def __init__(self, url: str, reason: str) -> None:
        self.reason = reason
        super().__init__(url, f"Can't fetch website ({url}): {reason}")


class HttpStatusError(FetchError):
    """Raised for a response with a non-2xx status code."""

    def __init__(self, status: int, url: str) -> None:
        self.status = status
        super().__init__(url, f"Invalid status code ({url}): {status}")


class ParseHttpResponseError(FetchError):
    """Raised when the response body can't be decoded."""

    def __init__(self, url: str, reason: str) -> None:
        self.reason = reason
        super().__init__(url, f"Can't read response ({url}): {reason}")


class BinaryResponseError(FetchError):
    """Raised when the response is not text."""

    def __init__(self, url: str, content_type: str | None = None) -> None:
        self.content_type = content_type
        super().__init__(url, f"Can't fetch binary bookmark ({url})")


class EmptyResponseError(FetchError):
    """Raised when the response body is empty."""

    def __init__(self, url: str) -> None:
        super().__init__(url, f"Can't fetch empty bookmark ({url})")


class CacheError(MarksyncError):
    """Raised when the cache directory or a cache file can't be accessed."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cache error at {path}: {reason}")


class CacheWriteError(CacheError):
    """Raised when a cache file can't be created or written."""

    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(path, reason)
        self.args = (f"Can't create file at {path}: {reason}",)


class ConvertError(MarksyncError):
    """Raised when html can't be converted to the cache format."""


class StoreError(MarksyncError):
    """Raised when the bookmark store can't be read or written."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Can't use bookmark store at {path}: {reason}")


class SourceReadError(MarksyncError):
    """Raised when a bookmark source file can't be read."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Can't read bookmarks from {path}: {reason}")
