"""Url parsing and normalization.

All urls are normalized here before they are compared or stored, so
that the same website imported from different sources maps to a
single bookmark.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from marksync.errors import ConvertHostError, ParseUrlError

if TYPE_CHECKING:
    pass

DEFAULT_PORTS = {"http": 80, "https": 443}


def parse_url(raw: str) -> str:
    """Parse and normalize an absolute url.

    Scheme and host are lowercased, default ports are dropped and an
    empty path becomes "/". Query and fragment are kept as they are.

    Args:
        raw: Url string, surrounding whitespace is ignored.

    Returns:
        Normalized url.

    Raises:
        ParseUrlError: If the url has no scheme or host, or contains whitespace.
    """
    candidate = raw.strip()
    if not candidate:
        raise ParseUrlError(raw, "empty url")
    if any(char.isspace() for char in candidate):
        raise ParseUrlError(raw, "url contains whitespace")

    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        port = parts.port
    except ValueError as e:
        raise ParseUrlError(raw, str(e)) from e

    if not parts.scheme:
        raise ParseUrlError(raw, "missing scheme")
    if not hostname:
        raise ParseUrlError(raw, "missing host")

    scheme = parts.scheme.lower()
    host = f"[{hostname}]" if ":" in hostname else hostname

    userinfo, _, _ = parts.netloc.rpartition("@")
    netloc = f"{userinfo}@{host}" if userinfo else host
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def try_parse_url(raw: str) -> str | None:
    """Parse a url, returning None instead of raising.

    Args:
        raw: Url string.

    Returns:
        Normalized url, or None if the url is invalid.
    """
    try:
        return parse_url(raw)
    except ParseUrlError:
        return None


def host_of(url: str) -> str:
    """Get the host of a url.

    Args:
        url: Absolute url.

    Returns:
        Lowercased host name.

    Raises:
        ConvertHostError: If the url has no host.
    """
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    if not host:
        raise ConvertHostError(url)
    return host
