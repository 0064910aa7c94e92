#!/usr/bin/env python3
"""
FeedFilter - RSS Feed Rewriting Proxy
=====================================

Main application entry point.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py refresh                   # Fetch and print the rewritten feed once
    python main.py serve --port 5000         # Serve /rss and /refresh
"""

import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from feedfilter.cli import main


if __name__ == "__main__":
    main()
