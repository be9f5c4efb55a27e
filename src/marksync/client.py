"""Http client for fetching bookmarked websites.

This module wraps httpx with the response validation marksync needs
and throttles requests per host, so that fetching many bookmarks of the
same site doesn't hammer it.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog

from marksync.errors import (
    BinaryResponseError,
    EmptyResponseError,
    HttpResponseError,
    HttpStatusError,
    ParseHttpResponseError,
)
from marksync.models import TargetBookmark
from marksync.urls import host_of

if TYPE_CHECKING:
    from marksync.config import FetchSettings

logger = structlog.get_logger(__name__)

BINARY_TYPE_PREFIXES = ("application/", "image/", "audio/", "video/")
TEXT_APPLICATION_TYPES = ("application/xhtml+xml",)


def is_binary_content_type(content_type: str | None) -> bool:
    """Check whether a content type can't be cached as text.

    Args:
        content_type: Value of the Content-Type header.

    Returns:
        True for a missing or binary content type.
    """
    if not content_type:
        return True
    mime_type = content_type.split(";", 1)[0].strip().lower()
    if mime_type in TEXT_APPLICATION_TYPES:
        return False
    return mime_type.startswith(BINARY_TYPE_PREFIXES)


class Throttler:
    """Spreads requests to the same host over time.

    The time of the last request is tracked per host. A request that
    follows the previous one within half the interval waits the full
    interval, one within the interval waits half of it.
    """

    def __init__(
        self,
        interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the throttler.

        Args:
            interval_ms: Throttling interval in milliseconds.
            clock: Returns the current time in seconds.
            sleep: Awaitable sleep taking seconds.
        """
        self.interval = interval_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._last_fetched: dict[str, float] = {}
        self._lock = threading.Lock()

    def delay_for(self, host: str) -> float:
        """Record a request to a host and compute how long it has to wait.

        Args:
            host: Host of the request.

        Returns:
            Delay in seconds.
        """
        now = self._clock()
        with self._lock:
            last_fetched = self._last_fetched.get(host)
            self._last_fetched[host] = now

        if last_fetched is None:
            return 0.0

        elapsed = now - last_fetched
        if elapsed < self.interval / 2:
            return self.interval
        if elapsed < self.interval:
            return self.interval / 2
        return 0.0

    async def throttle(self, url: str) -> float:
        """Wait until a request to the url may be sent.

        Args:
            url: Url of the request.

        Returns:
            Time waited in seconds.

        Raises:
            ConvertHostError: If the url has no host.
        """
        host = host_of(url)
        delay = self.delay_for(host)
        if delay > 0:
            logger.debug("Throttling request", host=host, delay=delay)
            await self._sleep(delay)
        return delay


class ClientProtocol(Protocol):
    """Protocol for fetch client implementations (for testing)."""

    async def fetch(self, bookmark: TargetBookmark) -> str:
        """Fetch the website of a bookmark.

        Args:
            bookmark: Bookmark to fetch.

        Returns:
            Html of the website.
        """
        ...


class Client:
    """Fetches websites over http.

    Connections are pooled and reused; the pool caps idle connections so
    that a large batch doesn't exhaust file descriptors.
    """

    def __init__(
        self,
        settings: FetchSettings,
        transport: httpx.AsyncBaseTransport | None = None,
        throttler: Throttler | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Fetch settings.
            transport: Optional httpx transport, used in tests.
            throttler: Optional throttler. Created from the settings if None.
        """
        self.settings = settings
        self.throttler = throttler or Throttler(settings.request_throttling)
        self._http_client = httpx.AsyncClient(
            timeout=settings.request_timeout / 1000,
            limits=httpx.Limits(
                max_connections=settings.max_concurrent_requests,
                max_keepalive_connections=settings.max_idle_connections_per_host,
                keepalive_expiry=settings.idle_connections_timeout / 1000,
            ),
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> Client:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http_client.aclose()

    async def fetch(self, bookmark: TargetBookmark) -> str:
        """Fetch the website of a bookmark.

        Args:
            bookmark: Bookmark to fetch.

        Returns:
            Html of the website.

        Raises:
            ConvertHostError: If the url has no host.
            HttpResponseError: If the request fails.
            HttpStatusError: For a non-2xx response.
            BinaryResponseError: If the response isn't text.
            ParseHttpResponseError: If the body can't be read.
            EmptyResponseError: If the body is empty.
        """
        url = bookmark.url
        await self.throttler.throttle(url)

        logger.debug("Fetching website", url=url)
        try:
            async with self._http_client.stream("GET", url) as response:
                if not response.is_success:
                    raise HttpStatusError(response.status_code, url)

                content_type = response.headers.get("content-type")
                if is_binary_content_type(content_type):
                    raise BinaryResponseError(url, content_type)

                try:
                    await response.aread()
                    html = response.text
                except (httpx.HTTPError, UnicodeDecodeError, LookupError) as e:
                    raise ParseHttpResponseError(url, str(e) or type(e).__name__) from e
        except httpx.HTTPError as e:
            raise HttpResponseError(url, str(e) or type(e).__name__) from e

        if not html.strip():
            raise EmptyResponseError(url)
        return html


class MockClient:
    """Mock fetch client for testing.

    Responses are configured per url. An exception instance as response
    is raised instead of returned. The client tracks fetched urls and the
    highest number of simultaneous fetches.
    """

    def __init__(
        self,
        responses: dict[str, str | Exception] | None = None,
        delay: float = 0.0,
    ) -> None:
        """Initialize mock client.

        Args:
            responses: Html or exception per url.
            delay: Seconds every fetch takes.
        """
        self.responses = responses or {}
        self.delay = delay
        self.fetched: list[str] = []
        self.active = 0
        self.peak_active = 0

    async def fetch(self, bookmark: TargetBookmark) -> str:
        """Return the configured response for the bookmark url."""
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.fetched.append(bookmark.url)
            response = self.responses.get(bookmark.url)
            if response is None:
                raise HttpStatusError(404, bookmark.url)
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.active -= 1
