"""
Crawler module for site scraping.

Contains components for rendering, extracting, downloading, crawling,
reporting and cloning.
"""

from .crawler import CrawlOptions, CrawlSession, Frontier, SiteCrawler, crawl_site
from .renderer import PageRenderer, PageSurface
from .extractor import PageExtractor, PageContent
from .downloader import AssetDownloader
from .report import aggregate_technologies, build_report, generate_summary, save_report
from .cloner import SiteCloner

__all__ = [
    "CrawlOptions",
    "CrawlSession",
    "Frontier",
    "SiteCrawler",
    "crawl_site",
    "PageRenderer",
    "PageSurface",
    "PageExtractor",
    "PageContent",
    "AssetDownloader",
    "aggregate_technologies",
    "build_report",
    "generate_summary",
    "save_report",
    "SiteCloner",
]
