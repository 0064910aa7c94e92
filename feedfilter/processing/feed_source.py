"""
Feed Source
===========

Retrieves the raw upstream feed over HTTP and classifies transport failures
into transient (retriable) and permanent errors.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
import certifi

from ..utils.exceptions import (
    PermanentTransportError,
    REQUEST_TIMEOUT_STATUS,
    TransientTransportError,
    classify_transport_error,
)
from ..utils.logging import get_logger_for_component


class HttpFeedSource:
    """Fetches the configured feed URL as raw bytes."""

    def __init__(self, url: str, timeout: float = 30.0, user_agent: str = "FeedFilter/1.0"):
        """Initialize feed source.

        Args:
            url: Upstream feed URL
            timeout: Total request timeout in seconds
            user_agent: User-Agent header sent upstream
        """
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self.logger = get_logger_for_component("monitor")

        # SSL context for secure requests
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(ssl=self.ssl_context, limit_per_host=2)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml, */*",
            "Accept-Encoding": "gzip, deflate",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def __call__(self) -> bytes:
        return await self.fetch()

    async def fetch(self, session: Optional[aiohttp.ClientSession] = None) -> bytes:
        """Download the feed body.

        Raises:
            TransientTransportError: On 5xx, 408 or timeout
            PermanentTransportError: On any other HTTP or connection failure
        """
        try:
            if session is not None:
                return await self._get(session)
            async with self.get_session() as own_session:
                return await self._get(own_session)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise classify_transport_error(e, feed_url=self.url) from e

    async def _get(self, session: aiohttp.ClientSession) -> bytes:
        self.logger.debug(f"Fetching feed: {self.url}")

        async with session.get(self.url) as response:
            if response.status >= 400:
                message = f"HTTP error: {response.reason}, Status: {response.status}"
                if response.status >= 500 or response.status == REQUEST_TIMEOUT_STATUS:
                    raise TransientTransportError(
                        message, status=response.status, feed_url=self.url
                    )
                raise PermanentTransportError(
                    message, status=response.status, feed_url=self.url
                )

            return await response.read()
