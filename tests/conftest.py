"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedFilter tests.
"""

import logging
import os
import sys
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from feedfilter.config import settings as settings_module
from feedfilter.config.settings import FeedFilterSettings
from feedfilter.utils.logging import BoundedFileHandler, BoundedLogFactory


FEED_URL = "http://feeds.example.test/rss"

ATOM_NS = "http://www.w3.org/2005/Atom"
MEDIA_NS = "http://search.yahoo.com/mrss/"

# Serialized documents never carry the declaration, so expectations compare
# against the body alone
RSS_BODY = """<rss xmlns:atom="http://www.w3.org/2005/Atom" xmlns:media="http://search.yahoo.com/mrss/" version="2.0">
  <channel>
    <title>Episode Tracker</title>
    <link>http://example.com</link>
    <atom:link href="http://example.com/rss" rel="self"/>
    <description>Latest episodes</description>
    <item>
      <title>Show S01E02 720p</title>
      <link>http://example.com/episodes/1</link>
      <description>Pilot 1080p x265</description>
      <media:thumbnail url="http://example.com/1.jpg"/>
      <guid>episode-1</guid>
    </item>
    <item>
      <title>Other Show S03E10 1080p</title>
      <link>http://example.com/episodes/2</link>
      <description>Finale 720p WEB</description>
      <media:thumbnail url="http://example.com/2.jpg"/>
      <guid>episode-2</guid>
    </item>
  </channel>
</rss>"""

SAMPLE_RSS = '<?xml version="1.0" encoding="UTF-8"?>\n' + RSS_BODY


class FakeFeedSource:
    """Feed source returning (or raising) queued responses in order.

    The last response repeats once the queue is down to one entry.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        response = self.responses[0] if len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


# ============================================================================
# Environment Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep FEEDFILTER_* variables and global settings state out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("FEEDFILTER_"):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(settings_module, "_config_file", None)
    monkeypatch.setattr(settings_module, "_settings", None)
    yield


@pytest.fixture(autouse=True)
def detach_bounded_handlers():
    """Remove bounded file handlers attached to component loggers by a test."""
    yield
    for name in list(logging.Logger.manager.loggerDict):
        if not name.startswith("feedfilter"):
            continue
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if isinstance(handler, BoundedFileHandler):
                logger.removeHandler(handler)


# ============================================================================
# Feed Fixtures
# ============================================================================


@pytest.fixture
def sample_rss():
    return SAMPLE_RSS


@pytest.fixture
def rss_body():
    return RSS_BODY


@pytest.fixture
def feed_settings_factory(tmp_path):
    """Build settings pointing at the fake feed URL with test-friendly timings."""

    def _factory(**feed_overrides):
        feed = {"input_source": FEED_URL}
        feed.update(feed_overrides)
        return FeedFilterSettings(
            feed=feed,
            logger={"log_directory": str(tmp_path / "logs")},
            monitor={
                "max_retries": 3,
                "retry_delay_seconds": 5.0,
                "poll_interval_seconds": 300.0,
            },
            logging={"console_logging": False},
        )

    return _factory


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def log_factory(log_dir):
    return BoundedLogFactory(log_dir, max_file_size_bytes=100 * 1024, buffer_size=50)
