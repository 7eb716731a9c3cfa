#!/usr/bin/env python3
"""
Site Scraper - website crawling and documentation tool.

Crawls a website by following internal links, captures a screenshot and
structured content for every page, and detects the front-end technologies
in use.

Usage:
    site-scraper https://example.com --max-pages 20 --output ./docs
    site-scraper --ui --port 8080

Features:
    - Breadth-first crawling of internal links
    - Full-page screenshots with animations frozen
    - Text, headings, links, images and landmark extraction
    - Framework, library, analytics and CMS detection
    - Optional image downloads and single-page cloning
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from .crawler import CrawlOptions, SiteCloner, crawl_site
from .models import SiteReport
from .utils.constants import (
    DEFAULT_CRAWL_DELAY,
    DEFAULT_DATA_DIR,
    DEFAULT_MAX_PAGES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PORT,
    DEFAULT_SCREENSHOT_DIR,
    DEFAULT_SCREENSHOT_QUALITY,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
)
from .utils.log import (
    setup_logger,
    set_verbose,
    print_status,
    print_success,
    print_error,
    print_info,
    print_warning,
)
from .utils.paths import format_bytes, validate_url


def build_parser() -> argparse.ArgumentParser:
    """
    Build the command line parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog='site-scraper',
        description='Crawl a website, screenshot every page and detect its technology stack',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s https://example.com
    %(prog)s https://example.com --max-pages 100 --output ./docs
    %(prog)s -u https://example.com -m 20 -d 500
    %(prog)s https://example.com --clone
    %(prog)s --ui --port 8080

Output (CLI mode):
    screenshots/<page>/     screenshot.png and data.json per page
    output/report.json      full JSON report
    output/summary.txt      human-readable summary
        """
    )

    parser.add_argument(
        'url',
        nargs='?',
        help='Base URL to start crawling from'
    )

    parser.add_argument(
        '--url', '-u',
        dest='url_option',
        type=str,
        help='Base URL to crawl (alternative to the positional argument)'
    )

    parser.add_argument(
        '--max-pages', '-m',
        type=int,
        default=DEFAULT_MAX_PAGES,
        help=f'Maximum number of pages to crawl, 0 for unlimited (default: {DEFAULT_MAX_PAGES})'
    )

    parser.add_argument(
        '--delay', '-d',
        type=int,
        default=DEFAULT_CRAWL_DELAY,
        help=f'Delay between requests in milliseconds (default: {DEFAULT_CRAWL_DELAY})'
    )

    parser.add_argument(
        '--screenshots', '-s',
        type=str,
        default=DEFAULT_SCREENSHOT_DIR,
        help=f'Directory for per-page screenshots and data (default: {DEFAULT_SCREENSHOT_DIR})'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help=f'Directory for report.json and summary.txt (default: {DEFAULT_OUTPUT_DIR})'
    )

    parser.add_argument(
        '--quality', '-q',
        type=int,
        default=DEFAULT_SCREENSHOT_QUALITY,
        help=f'Screenshot quality 0-100, JPEG only (default: {DEFAULT_SCREENSHOT_QUALITY})'
    )

    parser.add_argument(
        '--format',
        choices=['png', 'jpeg'],
        default='png',
        help='Screenshot image format (default: png)'
    )

    parser.add_argument(
        '--width', '-w',
        type=int,
        default=DEFAULT_VIEWPORT_WIDTH,
        help=f'Viewport width in pixels (default: {DEFAULT_VIEWPORT_WIDTH})'
    )

    parser.add_argument(
        '--height',
        type=int,
        default=DEFAULT_VIEWPORT_HEIGHT,
        help=f'Viewport height in pixels (default: {DEFAULT_VIEWPORT_HEIGHT})'
    )

    parser.add_argument(
        '--no-full-page',
        action='store_true',
        help='Capture the viewport only, not the full page'
    )

    parser.add_argument(
        '--disable-animations',
        action=argparse.BooleanOptionalAction,
        default=True,
        help='Freeze CSS and JavaScript animations before screenshots (default: on)'
    )

    parser.add_argument(
        '--download-assets',
        action='store_true',
        help='Download page assets into each page folder'
    )

    parser.add_argument(
        '--download-images',
        action=argparse.BooleanOptionalAction,
        default=True,
        help='Include images when downloading assets (default: on)'
    )

    parser.add_argument(
        '--clone',
        action='store_true',
        help='Clone the page with its CSS, JS and images instead of crawling'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show per-page progress and debug logging'
    )

    parser.add_argument(
        '--ui',
        action='store_true',
        help='Launch the web interface'
    )

    parser.add_argument(
        '--port', '-p',
        type=int,
        default=DEFAULT_PORT,
        help=f'Port for the web interface (default: {DEFAULT_PORT})'
    )

    parser.add_argument(
        '--data-dir',
        type=str,
        default=DEFAULT_DATA_DIR,
        help=f'Directory for projects and their output (default: {DEFAULT_DATA_DIR})'
    )

    return parser


def print_banner() -> None:
    """Print the application banner."""
    banner = """
╔═══════════════════════════════════════════════════════════╗
║                     SITE SCRAPER                          ║
║          Website Crawling & Documentation Tool            ║
╚═══════════════════════════════════════════════════════════╝
    """
    print_status(banner, "bold cyan")


def print_summary(report: SiteReport, output_dir: str) -> None:
    """
    Print the crawl summary.

    Args:
        report: Finished SiteReport
        output_dir: Directory the report files were written to
    """
    print("\n" + "=" * 60)
    print_success("SCRAPE COMPLETE")
    print("=" * 60)
    print(f"  Pages scraped:  {report.total_pages}")
    print(f"  Technologies:   {len(report.technologies)}")
    print(f"  Duration:       {report.duration:.2f}s")
    for tech in report.technologies:
        version = f" v{tech.version}" if tech.version else ""
        print(f"    - {tech.name}{version} ({tech.confidence.value})")
    print("=" * 60 + "\n")
    print_success(f"Report saved to: {os.path.abspath(output_dir)}")


async def scrape(args: argparse.Namespace, url: str) -> int:
    options = CrawlOptions(
        urls=[url],
        max_pages=args.max_pages,
        delay=args.delay,
        pages_dir=args.screenshots,
        output_dir=args.output or DEFAULT_OUTPUT_DIR,
        viewport_width=args.width,
        viewport_height=args.height,
        full_page=not args.no_full_page,
        image_format=args.format,
        quality=args.quality,
        disable_animations=args.disable_animations,
        download_assets=args.download_assets,
        download_images=args.download_images,
    )

    print_info(f"Target URL: {url}")
    print_info(f"Max pages: {options.max_pages or 'unlimited'}, delay: {options.delay}ms")

    report = await crawl_site(options)
    failed = [page.url for page in report.pages if page.status_code == 0]
    if failed:
        print_warning(f"{len(failed)} pages could not be loaded: {', '.join(failed)}")
    print_summary(report, options.output_dir)
    return 0


async def clone(args: argparse.Namespace, url: str) -> int:
    cloner = SiteCloner(url, output_dir=args.output, download_images=args.download_images)
    result = await cloner.clone()
    for error in result.errors:
        print_warning(error)
    print_info(f"Saved {result.total_assets} files ({format_bytes(result.total_size)})")
    print_success(f"Site cloned to: {os.path.abspath(result.output_dir)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the site scraper.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        parser.print_help()
        print("\nTIP: Use --ui to launch the web interface for project management.\n")
        return 0

    args = parser.parse_args(argv)

    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)
    set_verbose(args.verbose)

    if args.ui:
        from .web import run_app
        print_info(f"Starting web interface at http://127.0.0.1:{args.port}")
        run_app(port=args.port, data_dir=args.data_dir)
        return 0

    try:
        url = validate_url(args.url_option or args.url or "")
    except ValueError as e:
        print_error(f"Error: {e}")
        print_error("Usage: site-scraper <url> [options] | site-scraper --ui [--port <port>]")
        return 1

    print_banner()

    try:
        if args.clone:
            return asyncio.run(clone(args, url))
        return asyncio.run(scrape(args, url))
    except KeyboardInterrupt:
        print_error("\nScrape interrupted by user")
        return 1
    except ValueError as e:
        print_error(f"Invalid input: {e}")
        return 1
    except Exception as e:
        print_error(f"Error during scraping: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def run() -> None:
    """Entry point wrapper for running as module."""
    sys.exit(main())


if __name__ == '__main__':
    run()
