"""
FeedFilter - Feed Rewriting Proxy
=================================

Polls a single upstream RSS feed, rewrites it with declarative tag rules and
serves the latest rewrite over HTTP.

Main Components:
- Configuration: JSON file + environment variables with Pydantic validation
- Tag Transformer: tag removal, splitting and regex cleanup on the feed tree
- Feed Monitor: resilient fetch loop with retry classification
- Feed Cache: single-slot store of the latest rewrite
- Logging: bounded per-component log files
"""

__version__ = "1.0.0"
__author__ = "FeedFilter Development Team"
__description__ = "Rule-based RSS feed rewriting proxy"

# Core imports for easy access
from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedFilterError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedFilterError",
]
