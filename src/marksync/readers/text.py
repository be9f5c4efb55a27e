"""Reader for plain text files with one url per line."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from marksync.errors import SourceReadError
from marksync.models import SourceType
from marksync.readers.base import SourceReader

if TYPE_CHECKING:
    from marksync.bookmarks.source import SourceBookmarks

logger = structlog.get_logger(__name__)


class TextReader(SourceReader):
    """Reads one url per line. Blank lines and lines starting with '#' are skipped."""

    source_type = SourceType.SIMPLE
    extensions = (".txt",)

    def import_into(self, bookmarks: SourceBookmarks) -> None:
        """Add every url of the file to the collection."""
        try:
            content = self.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise SourceReadError(self.path, f"invalid utf-8: {e}") from e

        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            bookmarks.add(line, self.source_type.value)
        logger.debug("Read text bookmarks", path=str(self.path))
