"""
Feed Processing Integration Tests
=================================

The full pipeline against a local upstream served by aiohttp: HTTP fetch,
status classification, retries, rewrite and publication on /rss.
"""

from unittest.mock import AsyncMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from feedfilter.api.server import create_app
from feedfilter.processing.feed_monitor import FeedMonitor
from feedfilter.processing.feed_source import HttpFeedSource
from feedfilter.storage.feed_cache import FeedCache
from feedfilter.utils.exceptions import PermanentTransportError, TransientTransportError


class Upstream:
    """Local feed server answering with queued statuses before the feed."""

    def __init__(self, body: str, failures=()):
        self.body = body
        self.failures = list(failures)
        self.requests = 0

    async def handle(self, request: web.Request) -> web.Response:
        self.requests += 1
        if self.failures:
            return web.Response(status=self.failures.pop(0), text="upstream error")
        return web.Response(text=self.body, content_type="application/rss+xml")

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/feed", self.handle)
        return app


def _monitor(url, settings_factory, cache, sleep, **feed_overrides):
    settings = settings_factory(input_source=url, **feed_overrides)
    return FeedMonitor(cache, settings=settings, sleep=sleep)


@pytest.mark.asyncio
async def test_http_source_fetches_bytes(sample_rss):
    upstream = Upstream(sample_rss)

    async with TestServer(upstream.app()) as server:
        source = HttpFeedSource(str(server.make_url("/feed")), timeout=5.0)
        body = await source()

    assert body == sample_rss.encode("utf-8")


@pytest.mark.asyncio
@pytest.mark.parametrize("status, expected", [
    (503, TransientTransportError),
    (408, TransientTransportError),
    (404, PermanentTransportError),
])
async def test_http_source_classifies_status(status, expected):
    upstream = Upstream("", failures=[status])

    async with TestServer(upstream.app()) as server:
        source = HttpFeedSource(str(server.make_url("/feed")), timeout=5.0)
        with pytest.raises(expected) as exc_info:
            await source()

    assert exc_info.value.status == status


@pytest.mark.asyncio
async def test_connection_refused_is_permanent(unused_tcp_port):
    source = HttpFeedSource(f"http://127.0.0.1:{unused_tcp_port}/feed", timeout=5.0)

    with pytest.raises(PermanentTransportError):
        await source()


@pytest.mark.asyncio
async def test_pipeline_recovers_from_server_errors(sample_rss, feed_settings_factory):
    upstream = Upstream(sample_rss, failures=[503, 503])
    cache = FeedCache()
    sleep = AsyncMock()

    async with TestServer(upstream.app()) as server:
        monitor = _monitor(
            str(server.make_url("/feed")), feed_settings_factory, cache, sleep,
            tags_to_remove=["guid", "media:thumbnail", "link"],
            cleanup_tags=True,
        )
        text = await monitor.update_cached_feed()

    assert upstream.requests == 3
    assert sleep.await_count == 2
    assert cache.load() == text
    assert "<guid>" not in text
    assert "thumbnail" not in text
    assert "<link>http://example.com</link>" in text
    assert "episodes/1" not in text
    assert "<title>Show</title>" in text
    assert "<description>Pilot</description>" in text


@pytest.mark.asyncio
async def test_pipeline_gives_up_on_client_error(sample_rss, feed_settings_factory):
    upstream = Upstream(sample_rss, failures=[404])
    cache = FeedCache()
    sleep = AsyncMock()

    async with TestServer(upstream.app()) as server:
        monitor = _monitor(str(server.make_url("/feed")), feed_settings_factory, cache, sleep)
        with pytest.raises(PermanentTransportError):
            await monitor.update_cached_feed()

    assert upstream.requests == 1
    sleep.assert_not_awaited()
    assert cache.load() == ""


@pytest.mark.asyncio
async def test_refresh_endpoint_end_to_end(sample_rss, feed_settings_factory):
    upstream = Upstream(sample_rss)
    cache = FeedCache()

    async with TestServer(upstream.app()) as server:
        monitor = _monitor(
            str(server.make_url("/feed")), feed_settings_factory, cache, AsyncMock(),
            tag_split=[{
                "tag_name": "title",
                "split_pattern": r"(.+) S(\d{2})E(\d{2})",
                "new_tags": {"season": "$2", "episode": "$3"},
            }],
            cleanup_tags=True,
        )
        app = create_app(monitor, cache, run_monitor=False)

        async with TestClient(TestServer(app)) as client:
            refreshed = await client.get("/refresh")
            assert refreshed.status == 200

            feed = await (await client.get("/rss")).text()

    assert "<season>01</season>" in feed
    assert "<season>03</season>" in feed
    # Only $1 and $2 are bound; $3 stays literal
    assert "<episode>$3</episode>" in feed
    assert "<title>Show</title>" in feed
