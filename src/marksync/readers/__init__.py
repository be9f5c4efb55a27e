"""Bookmark source readers.

`select_reader` picks the reader for a source file by its extension and,
for JSON files, by the structure of the content.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import structlog

from marksync.errors import SourceReadError
from marksync.readers.base import SourceReader, traverse
from marksync.readers.browsers import (
    ChromiumReader,
    FirefoxReader,
    JsonReader,
    SafariReader,
    is_chromium_export,
    is_firefox_export,
    load_json,
)
from marksync.readers.text import TextReader

__all__ = [
    "ChromiumReader",
    "FirefoxReader",
    "SafariReader",
    "SourceReader",
    "TextReader",
    "latest_file",
    "select_reader",
    "traverse",
]

logger = structlog.get_logger(__name__)


def latest_file(directory: Path) -> Path:
    """Get the most recently modified file in a directory.

    Args:
        directory: Directory to search.

    Returns:
        Path of the newest regular file.

    Raises:
        SourceReadError: If the directory has no files or can't be read.
    """
    try:
        files = [path for path in directory.iterdir() if path.is_file()]
    except OSError as e:
        raise SourceReadError(directory, str(e)) from e
    if not files:
        raise SourceReadError(directory, "directory contains no bookmark file")
    return max(files, key=lambda path: path.stat().st_mtime)


def select_reader(path: Path, folders: Sequence[str] = ()) -> SourceReader:
    """Select the reader for a bookmark source.

    Args:
        path: Bookmark file, or a directory holding bookmark backups.
        folders: Folders to import from. Imports everything if empty.

    Returns:
        Reader for the source.

    Raises:
        SourceReadError: If the source is missing or its format is unsupported.
    """
    path = path.expanduser()
    if path.is_dir():
        path = latest_file(path)
    if not path.is_file():
        raise SourceReadError(path, "file not found")

    extension = path.suffix.lower()
    if extension in TextReader.extensions:
        return TextReader(path, folders)
    if extension in SafariReader.extensions:
        return SafariReader(path, folders)
    if extension in JsonReader.extensions:
        try:
            content = path.read_bytes()
        except OSError as e:
            raise SourceReadError(path, str(e)) from e
        data = load_json(path, content)
        if is_firefox_export(data):
            return FirefoxReader(path, folders)
        if is_chromium_export(data):
            return ChromiumReader(path, folders)
        raise SourceReadError(path, "unknown json bookmark format")

    raise SourceReadError(path, f"unsupported file type '{extension}'")
