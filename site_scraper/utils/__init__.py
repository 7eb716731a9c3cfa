"""
Utility modules for the site scraper.

Contains logging, URL and path handling utilities, and constants.
"""

from .log import setup_logger, get_logger, set_verbose
from .paths import (
    normalize_url,
    should_crawl,
    resolve_url,
    sanitize_filename,
    unique_filename,
    format_bytes,
    ensure_dir,
)
from .constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_PAGE_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_CRAWL_DELAY,
    DEFAULT_MAX_PAGES,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "set_verbose",
    "normalize_url",
    "should_crawl",
    "resolve_url",
    "sanitize_filename",
    "unique_filename",
    "format_bytes",
    "ensure_dir",
    "DEFAULT_USER_AGENT",
    "DEFAULT_PAGE_TIMEOUT",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_CRAWL_DELAY",
    "DEFAULT_MAX_PAGES",
]
