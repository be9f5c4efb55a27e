"""Shared pytest fixtures for the test suite.

This module provides common fixtures used across multiple test files.
"""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from marksync.bookmarks.target import TargetBookmarks
from marksync.cache import MockCache
from marksync.client import MockClient
from marksync.models import CacheMode, SourceType, TargetBookmark
from marksync.store import InMemoryStore

if TYPE_CHECKING:
    from _pytest.monkeypatch import MonkeyPatch

NOW = 1_700_000_000_000

SAMPLE_HTML = (
    "<html><head><title>Example</title><script>var x = 1;</script></head>"
    "<body><article><h1>Example article</h1>"
    "<p>This paragraph has enough text to be picked as the main content.</p>"
    "<p>A second paragraph follows the first one.</p></article></body></html>"
)


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch: MonkeyPatch, tmp_path: Path) -> Path:
    """Point the marksync home directory at a temporary directory.

    Returns:
        Path to the temporary home directory.
    """
    home = tmp_path / "marksync-home"
    monkeypatch.setenv("MARKSYNC_HOME", str(home))
    for name in ("MARKSYNC_CACHE_MODE", "MARKSYNC_LOG_LEVEL", "MARKSYNC_IGNORED_URLS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to the temporary directory.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_html() -> str:
    """Html of a simple article page.

    Returns:
        Html string.
    """
    return SAMPLE_HTML


@pytest.fixture
def sample_bookmark() -> TargetBookmark:
    """Create a sample bookmark for testing.

    Returns:
        A TargetBookmark instance.
    """
    return TargetBookmark.create(
        "https://example.com/article",
        NOW,
        sources={SourceType.FIREFOX.value},
    )


@pytest.fixture
def sample_bookmarks() -> TargetBookmarks:
    """Create a collection of sample bookmarks.

    Returns:
        TargetBookmarks with three bookmarks, one of them cached.
    """
    cached = TargetBookmark.create("https://cached.example.com/", NOW, sources={"firefox"})
    cached.set_cached(CacheMode.TEXT, NOW + 1)
    return TargetBookmarks(
        [
            TargetBookmark.create("https://first.example.com/", NOW, sources={"firefox"}),
            TargetBookmark.create("https://second.example.com/", NOW, sources={"chrome"}),
            cached,
        ]
    )


@pytest.fixture
def mock_client() -> MockClient:
    """Create a mock client answering every sample url.

    Returns:
        MockClient instance.
    """
    return MockClient(
        responses={
            "https://example.com/article": SAMPLE_HTML,
            "https://first.example.com/": SAMPLE_HTML,
            "https://second.example.com/": SAMPLE_HTML,
            "https://cached.example.com/": SAMPLE_HTML,
        }
    )


@pytest.fixture
def mock_cache() -> MockCache:
    """Create an in-memory cache in text mode.

    Returns:
        MockCache instance.
    """
    return MockCache(CacheMode.TEXT)


@pytest.fixture
def in_memory_store() -> InMemoryStore:
    """Create an empty in-memory bookmark store.

    Returns:
        InMemoryStore instance.
    """
    return InMemoryStore()
