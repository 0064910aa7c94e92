"""
Feed Cache
==========

Single-slot holder for the most recent transformed feed.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..utils.logging import get_logger_for_component


@dataclass(frozen=True)
class LatestFeed:
    """Snapshot of the cached feed."""

    text: str = ""
    updated_at: Optional[datetime] = None


class FeedCache:
    """Thread-safe single-slot cache of the latest feed text."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger_for_component("update")
        self._lock = threading.Lock()
        self._latest = LatestFeed()

    @property
    def latest(self) -> LatestFeed:
        with self._lock:
            return self._latest

    def store(self, text: str) -> LatestFeed:
        """Replace the cached feed and stamp it with the current time."""
        snapshot = LatestFeed(text=text, updated_at=datetime.now())
        with self._lock:
            self._latest = snapshot
        self.logger.info(f"Feed updated at {snapshot.updated_at:%Y-%m-%d %H:%M:%S}")
        return snapshot

    def load(self) -> str:
        """Return the cached feed text, or an empty string before the first store."""
        snapshot = self.latest
        updated = (
            f"{snapshot.updated_at:%Y-%m-%d %H:%M:%S}" if snapshot.updated_at else "never"
        )
        self.logger.info(f"Feed requested. Last updated: {updated}")
        return snapshot.text
