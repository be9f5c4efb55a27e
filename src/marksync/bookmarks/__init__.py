"""Bookmark collections and the reconciler."""

from marksync.bookmarks.manager import BookmarkManager, RunConfig
from marksync.bookmarks.source import SourceBookmarks
from marksync.bookmarks.target import TargetBookmarks

__all__ = ["BookmarkManager", "RunConfig", "SourceBookmarks", "TargetBookmarks"]
