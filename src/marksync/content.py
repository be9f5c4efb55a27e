"""Html filtering and conversion for cached websites."""

from __future__ import annotations

import difflib
import re
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup
from markdownify import ATX, markdownify

from marksync.errors import ConvertError, ParseUrlError
from marksync.models import CacheMode, DiffLine, DiffTag, UnderlyingType
from marksync.urls import parse_url

if TYPE_CHECKING:
    pass

MIN_CONTENT_LENGTH = 50

FILTERED_TAGS = ["script", "style", "noscript", "iframe", "svg", "img", "video"]

UNDERLYING_SELECTORS = {
    UnderlyingType.HACKER_NEWS: "span.titleline a",
    UnderlyingType.REDDIT: "a.styled-outbound-link",
}


def filter_html(html: str) -> str:
    """Remove scripts, styles and media from html.

    Args:
        html: Raw html.

    Returns:
        Filtered html.
    """
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(FILTERED_TAGS):
        element.decompose()
    return str(soup)


def convert_to_text(html: str) -> str:
    """Extract the main text content of a website.

    The first of article, main and body with enough text wins. Block
    structure is kept as one line per text node so that diffs stay
    readable.

    Args:
        html: Html to convert.

    Returns:
        Text content, one paragraph per line.
    """
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(["script", "style", "noscript", "nav", "header", "footer"]):
        element.decompose()

    fallback = ""
    for candidate in (soup.find("article"), soup.find("main"), soup.body, soup):
        if candidate is None:
            continue
        lines = [
            re.sub(r"\s+", " ", line).strip()
            for line in candidate.get_text(separator="\n").splitlines()
        ]
        text = "\n".join(line for line in lines if line)
        if len(text) >= MIN_CONTENT_LENGTH:
            return text
        fallback = fallback or text
    return fallback


def convert_to_markdown(html: str) -> str:
    """Convert html to markdown.

    Args:
        html: Html to convert.

    Returns:
        Markdown document.
    """
    markdown = markdownify(html, heading_style=ATX)
    # Collapse the blank lines left behind by removed elements.
    return re.sub(r"\n{3,}", "\n\n", markdown).strip()


def convert(html: str, mode: CacheMode) -> str:
    """Convert html to the representation of a cache mode.

    Args:
        html: Filtered html.
        mode: Target representation.

    Returns:
        Converted content.

    Raises:
        ConvertError: If the html can't be converted.
    """
    try:
        if mode == CacheMode.HTML:
            return html
        if mode == CacheMode.MARKDOWN:
            return convert_to_markdown(html)
        if mode == CacheMode.TEXT:
            return convert_to_text(html)
    except RecursionError as e:
        raise ConvertError(f"Can't convert html to {mode.value}: nesting too deep") from e
    raise ConvertError(f"Unknown cache mode: {mode}")


def select_underlying(html: str, underlying_type: UnderlyingType) -> str | None:
    """Find the article an aggregator page links to.

    Args:
        html: Raw html of the aggregator page.
        underlying_type: Kind of aggregator.

    Returns:
        Normalized url of the linked article, None if there is none or
        the link isn't an absolute url (e.g. a self post).
    """
    selector = UNDERLYING_SELECTORS.get(underlying_type)
    if selector is None:
        return None

    soup = BeautifulSoup(html, "html.parser")
    link = soup.select_one(selector)
    if link is None:
        return None

    href = link.get("href")
    if not isinstance(href, str):
        return None
    try:
        return parse_url(href)
    except ParseUrlError:
        return None


def diff_lines(old: str, new: str) -> list[DiffLine]:
    """Compute a line diff between two versions of a website.

    Args:
        old: Previously cached content.
        new: Freshly fetched content.

    Returns:
        Lines tagged as insert, delete or equal.
    """
    old_lines = old.splitlines()
    new_lines = new.splitlines()
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    lines: list[DiffLine] = []
    for opcode, i1, i2, j1, j2 in matcher.get_opcodes():
        if opcode == "equal":
            lines.extend(DiffLine(tag=DiffTag.EQUAL, line=line) for line in old_lines[i1:i2])
            continue
        if opcode in ("delete", "replace"):
            lines.extend(DiffLine(tag=DiffTag.DELETE, line=line) for line in old_lines[i1:i2])
        if opcode in ("insert", "replace"):
            lines.extend(DiffLine(tag=DiffTag.INSERT, line=line) for line in new_lines[j1:j2])
    return lines
