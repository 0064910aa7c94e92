"""
FeedFilter HTTP Server
======================

Serves the cached feed and a manual refresh trigger. The background monitor
runs for the lifetime of the application.
"""

from aiohttp import web

from ..config.settings import FeedFilterSettings
from ..processing.feed_monitor import FeedMonitor
from ..storage.feed_cache import FeedCache
from ..utils.logging import get_logger_for_component


RSS_CONTENT_TYPE = "application/rss+xml"

CACHE_KEY = web.AppKey("feed_cache", FeedCache)
MONITOR_KEY = web.AppKey("feed_monitor", FeedMonitor)

logger = get_logger_for_component("server")

routes = web.RouteTableDef()


@routes.get("/rss")
async def get_feed(request: web.Request) -> web.Response:
    """Return the latest transformed feed."""
    feed = request.app[CACHE_KEY].load()
    return web.Response(text=feed, content_type=RSS_CONTENT_TYPE)


@routes.get("/refresh")
async def refresh_feed(request: web.Request) -> web.Response:
    """Run a feed cycle right now."""
    monitor = request.app[MONITOR_KEY]
    try:
        await monitor.refresh()
    except Exception as e:
        logger.error(f"Manual refresh failed: {e}")
        return web.Response(
            status=500, text=f"Error refreshing feed: {e}"
        )

    return web.Response(text="Feed refreshed successfully.")


async def _monitor_lifecycle(app: web.Application):
    monitor = app[MONITOR_KEY]
    monitor.start()
    yield
    await monitor.stop()


def create_app(
    monitor: FeedMonitor, cache: FeedCache, run_monitor: bool = True
) -> web.Application:
    """Build the aiohttp application.

    Args:
        monitor: Feed monitor providing the refresh cycle
        cache: Feed cache served on /rss
        run_monitor: Start the polling loop with the application
    """
    app = web.Application()
    app[CACHE_KEY] = cache
    app[MONITOR_KEY] = monitor
    app.add_routes(routes)

    if run_monitor:
        app.cleanup_ctx.append(_monitor_lifecycle)

    return app


def run_server(settings: FeedFilterSettings) -> None:
    """Build the cache, monitor and application, then serve until interrupted."""
    cache = FeedCache()
    monitor = FeedMonitor(cache, settings=settings)
    app = create_app(monitor, cache)

    logger.info(
        f"Serving {settings.feed.input_source} on "
        f"http://{settings.server.host}:{settings.server.port}/rss"
    )
    web.run_app(
        app,
        host=settings.server.host,
        port=settings.server.port,
        print=None,
        access_log=None,
    )
