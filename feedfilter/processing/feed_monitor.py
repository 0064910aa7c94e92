"""
Feed Monitor
============

Fetches the upstream feed, parses and rewrites it, and keeps the feed cache
current. The same cycle runs on a timer and on demand.
"""

import asyncio
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from lxml import etree

from ..config.settings import FeedFilterSettings, get_settings
from ..recovery.retry_logic import RetryConfig, RetryManager
from ..storage.feed_cache import FeedCache
from ..utils.exceptions import (
    ConfigurationError,
    EmptyContentError,
    ErrorCode,
    MalformedInputError,
    classify_transport_error,
    describe_error,
)
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .feed_source import HttpFeedSource
from .tag_transformer import RuleSet, TagTransformer


FeedContent = Union[str, bytes]
FeedSourceFn = Callable[[], Awaitable[FeedContent]]

SNIPPET_LENGTH = 100


class MonitorState(str, Enum):
    """Where the current cycle is."""
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    TRANSFORMING = "transforming"
    COMMITTED = "committed"
    FAILED = "failed"


def parse_feed(content: FeedContent):
    """Parse raw feed content into an lxml ElementTree.

    Raises:
        MalformedInputError: If the content is not a well-formed document
    """
    if isinstance(content, str):
        # Text is already decoded; ignore the declared encoding
        data = content.encode("utf-8")
        encoding = "utf-8"
    else:
        data = content
        encoding = None

    parser = etree.XMLParser(
        encoding=encoding,
        resolve_entities=False,
        no_network=True,
        remove_blank_text=False,
        strip_cdata=False,
    )

    try:
        root = etree.fromstring(data, parser=parser)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise MalformedInputError(str(e)) from e

    return etree.ElementTree(root)


def serialize_feed(doc) -> str:
    """Serialize a document without an XML declaration."""
    return etree.tostring(doc, encoding="unicode")


class FeedMonitor:
    """Polls the upstream feed and publishes rewrites into the cache."""

    def __init__(
        self,
        cache: FeedCache,
        settings: Optional[FeedFilterSettings] = None,
        feed_source: Optional[FeedSourceFn] = None,
        transformer: Optional[TagTransformer] = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        """Initialize the monitor.

        Args:
            cache: Cache receiving every successful rewrite
            settings: Application settings (default: global settings)
            feed_source: Coroutine function returning the raw feed; defaults to
                an HttpFeedSource for ``settings.feed.input_source``
            transformer: Tag transformer (default: a new TagTransformer)
            sleep: Awaitable sleep used for retry delays and poll waits
        """
        self.settings = settings or get_settings()
        self.cache = cache
        self.logger = get_logger_for_component("monitor")
        self.rule_set = RuleSet.from_settings(self.settings.feed)
        self.transformer = transformer or TagTransformer(logger=self.logger)
        self.sleep = sleep

        monitor_settings = self.settings.monitor
        self.poll_interval = monitor_settings.poll_interval_seconds
        self.retry_manager = RetryManager(
            RetryConfig(
                max_attempts=monitor_settings.max_retries,
                delay=monitor_settings.retry_delay_seconds,
            ),
            sleep=sleep,
            logger=self.logger,
        )

        self.input_source = self.settings.feed.input_source
        if feed_source is None:
            if not self.input_source:
                raise ConfigurationError(
                    "feed.input_source is required to poll the upstream feed",
                    config_key="feed.input_source",
                    error_code=ErrorCode.CONFIG_MISSING,
                )
            feed_source = HttpFeedSource(
                self.input_source,
                timeout=monitor_settings.request_timeout,
                user_agent=f"{self.settings.app_name}/{self.settings.version}",
            )
        self.feed_source = feed_source

        self.state = MonitorState.IDLE
        self.last_success: Optional[datetime] = None
        self.last_error: Optional[BaseException] = None
        self._task: Optional[asyncio.Task] = None

    async def fetch_and_process(self):
        """Fetch, parse and transform the feed once.

        Returns:
            The transformed lxml ElementTree

        Raises:
            EmptyContentError, MalformedInputError, TransientTransportError,
            PermanentTransportError, or whatever the transform raises
        """
        self.state = MonitorState.FETCHING
        try:
            content = await self.feed_source()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            classified = classify_transport_error(e, feed_url=self.input_source)
            if classified is None or classified is e:
                raise
            raise classified from e

        if not content or not content.strip():
            raise EmptyContentError(feed_url=self.input_source)

        self.state = MonitorState.PARSING
        try:
            doc = parse_feed(content)
        except MalformedInputError as e:
            snippet = content[:SNIPPET_LENGTH]
            if isinstance(snippet, bytes):
                snippet = snippet.decode("utf-8", errors="replace")
            self.logger.error(f"XML parsing error: {e}")
            self.logger.error(f"RSS content snippet: {snippet}...")
            e.context["feed_url"] = self.input_source
            raise

        self.state = MonitorState.TRANSFORMING
        self.transformer.transform(doc, self.rule_set)
        return doc

    async def fetch_with_retry(self):
        """Run fetch_and_process, retrying transient transport failures."""
        return await self.retry_manager.retry_async(
            self.fetch_and_process,
            description=f"fetch RSS feed from {self.input_source}",
        )

    async def update_cached_feed(self) -> str:
        """Run one full cycle and store the result in the cache.

        Returns:
            The feed text that was stored

        Raises:
            Any failure of the cycle; the cache is left untouched
        """
        try:
            with PerformanceLogger(self.logger, "feed update cycle"):
                doc = await self.fetch_with_retry()
                text = serialize_feed(doc)
                self.cache.store(text)
        except Exception as e:
            self.state = MonitorState.FAILED
            self.last_error = e
            self.logger.error(f"Failed to update cached feed after retries: {e}")
            raise

        self.state = MonitorState.COMMITTED
        self.last_success = datetime.now()
        self.last_error = None
        return text

    async def refresh(self) -> str:
        """Manual trigger; identical to a scheduled cycle."""
        self.logger.info("Manual feed refresh requested")
        return await self.update_cached_feed()

    async def run(self) -> None:
        """Poll forever, one cycle at a time, until cancelled."""
        while True:
            try:
                self.logger.info(f"Checking RSS feed at {datetime.now():%Y-%m-%d %H:%M:%S}")
                await self.update_cached_feed()
                self.logger.info("Feed processed and cached successfully.")
            except Exception as e:
                self._handle_exception(e)

            await self.sleep(self.poll_interval)

    def _handle_exception(self, exception: Exception) -> None:
        self.logger.error(
            f"Feed processing error: {describe_error(exception)}", exc_info=exception
        )

        inner = exception.__cause__ or exception.__context__
        if inner is not None:
            self.logger.error(f"Inner exception: {inner}")

    def start(self) -> asyncio.Task:
        """Start the polling loop as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="feed-monitor")
            self.logger.info(
                f"Feed monitor started, polling every {self.poll_interval:g}s"
            )
        return self._task

    async def stop(self) -> None:
        """Cancel the polling loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.logger.info("Feed monitor stopped")
