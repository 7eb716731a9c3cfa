"""
Logging utilities for the site scraper.

Provides colorful CLI logging using the rich library.
"""

import logging
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler


# Global console instance
console = Console()

# Logger instances cache
_loggers: dict = {}

# Crawl progress lines are promoted to INFO when verbose output is requested
_verbose = False


def setup_logger(
    name: str = "site_scraper",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and configure a logger with rich formatting.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_file: Optional file path to write logs

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    _loggers[name] = logger
    return logger


def get_logger(name: str = "site_scraper") -> logging.Logger:
    """
    Get a logger instance.

    Component loggers are children of the ``site_scraper`` logger so a single
    ``setup_logger()`` call configures all of them.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    if name != "site_scraper" and not name.startswith("site_scraper."):
        name = f"site_scraper.{name}"
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)
    return _loggers[name]


def set_verbose(enabled: bool) -> None:
    """Toggle per-page crawl progress output."""
    global _verbose
    _verbose = enabled


def _progress(message: str) -> None:
    logger = get_logger("progress")
    logger.log(logging.INFO if _verbose else logging.DEBUG, message)


def log_crawling(url: str, current: int, total: int) -> None:
    """Log the page currently being crawled."""
    limit = total if total > 0 else "∞"
    _progress(f"🌐 Crawling: {url} ({current}/{limit})")


def log_screenshot(path: str) -> None:
    _progress(f"📸 Screenshot captured: {path}")


def log_technologies(names: List[str]) -> None:
    if names:
        _progress(f"📊 Technologies: {', '.join(names)}")


def log_asset_download(kind: str, count: int) -> None:
    _progress(f"🖼️  Downloading {kind}: {count} found")


def log_downloaded(filename: str, size: str) -> None:
    _progress(f"  ✓ Downloaded: {filename} ({size})")


def log_download_failed(filename: str, error: str) -> None:
    _progress(f"  ⚠️  Failed: {filename} ({error})")


def log_page_complete(duration_seconds: float) -> None:
    _progress(f"✅ Page complete ({duration_seconds:.1f}s)")


def print_status(message: str, style: str = "bold blue") -> None:
    """
    Print a styled status message.

    Args:
        message: Message to print
        style: Rich style string
    """
    console.print(message, style=style, markup=False)


def print_error(message: str) -> None:
    print_status(f"❌ {message}", "bold red")


def print_success(message: str) -> None:
    print_status(f"✅ {message}", "bold green")


def print_warning(message: str) -> None:
    """Print a warning for a recoverable problem, such as a page that failed to load."""
    print_status(f"⚠️ {message}", "bold yellow")


def print_info(message: str) -> None:
    print_status(f"ℹ️ {message}", "bold cyan")
