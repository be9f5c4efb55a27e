"""Common interface of bookmark source readers.

Browser exports are trees of folders and bookmarks. `traverse` walks
such a tree, parsed from JSON or plist, and reports every bookmark
together with the selected folder it was found below.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from marksync.errors import SourceReadError
from marksync.models import SourceType

if TYPE_CHECKING:
    from marksync.bookmarks.source import SourceBookmarks

# Returns the url if the node is a bookmark.
SelectBookmark = Callable[[dict[str, Any]], str | None]
# Returns the folder name if the node is a folder.
SelectFolder = Callable[[dict[str, Any]], str | None]
# Receives (url, folder).
OnBookmark = Callable[[str, str | None], None]


def traverse(
    value: Any,
    select_bookmark: SelectBookmark,
    select_folder: SelectFolder,
    folders: Collection[str],
    on_bookmark: OnBookmark,
    selected_folder: str | None = None,
) -> None:
    """Walk a bookmark tree and report its bookmarks.

    Without folders every bookmark is reported. With folders only
    bookmarks below a folder with one of the given names are reported,
    together with the name of the outermost matching folder.

    Args:
        value: Tree node; dicts and lists are descended into.
        select_bookmark: Extracts the url of a bookmark node.
        select_folder: Extracts the name of a folder node.
        folders: Names of the folders to import from.
        on_bookmark: Called for every reported bookmark.
        selected_folder: Matching folder of an ancestor node.
    """
    if isinstance(value, dict):
        if selected_folder is None and folders:
            folder = select_folder(value)
            if folder is not None and folder in folders:
                selected_folder = folder

        url = select_bookmark(value)
        if url is not None and (not folders or selected_folder is not None):
            on_bookmark(url, selected_folder)

        for child in value.values():
            traverse(child, select_bookmark, select_folder, folders, on_bookmark, selected_folder)
    elif isinstance(value, list):
        for child in value:
            traverse(child, select_bookmark, select_folder, folders, on_bookmark, selected_folder)


class SourceReader:
    """Reads bookmarks from a source file into a SourceBookmarks collection.

    Attributes:
        source_type: Provenance tag of the imported bookmarks.
        extensions: File extensions the reader handles.
    """

    source_type: SourceType = SourceType.UNKNOWN
    extensions: tuple[str, ...] = ()

    def __init__(self, path: Path, folders: Sequence[str] = ()) -> None:
        """Initialize the reader.

        Args:
            path: Bookmark file to read.
            folders: Folders to import from. Imports everything if empty.
        """
        self.path = path
        self.folders = list(folders)

    def read_bytes(self) -> bytes:
        """Read the raw source file.

        Raises:
            SourceReadError: If the file can't be read.
        """
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise SourceReadError(self.path, str(e)) from e

    def import_into(self, bookmarks: SourceBookmarks) -> None:
        """Add the bookmarks of the source file to the collection.

        Args:
            bookmarks: Collection to add to.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={str(self.path)!r}, folders={self.folders!r})"
