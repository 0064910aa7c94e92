"""
FeedFilter Processing Module
============================

Feed retrieval, parsing and rewriting components.
"""

from .feed_source import HttpFeedSource
from .tag_transformer import RuleSet, TagTransformer
from .feed_monitor import FeedMonitor

__all__ = [
    'HttpFeedSource',
    'RuleSet',
    'TagTransformer',
    'FeedMonitor',
]
