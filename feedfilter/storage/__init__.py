"""
FeedFilter Storage Module
=========================

In-memory storage for the latest transformed feed.
"""

from .feed_cache import FeedCache, LatestFeed

__all__ = [
    "FeedCache",
    "LatestFeed",
]
