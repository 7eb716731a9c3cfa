"""
Main site crawler module.

Orchestrates the crawling process: breadth-first link discovery, per-page
screenshot, content extraction, technology detection, image downloads and
report assembly.
"""

import asyncio
import json
import os
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Set

from .downloader import AssetDownloader, collect_image_urls
from .extractor import PageContent, PageExtractor
from .renderer import PageRenderer
from .report import build_report, save_report
from ..analyzer.technologies import TechnologyDetector
from ..models import AssetDownloadResult, PageRecord, SiteReport, utc_now
from ..utils.constants import (
    ANIMATION_SETTLE_MS,
    DEFAULT_ASSET_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_CRAWL_DELAY,
    DEFAULT_MAX_ASSET_SIZE,
    DEFAULT_MAX_PAGES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PAGE_TIMEOUT,
    DEFAULT_SCREENSHOT_DIR,
    DEFAULT_SCREENSHOT_QUALITY,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    DEFAULT_WAIT_UNTIL,
    SETTLE_DELAY_MS,
)
from ..utils.log import (
    get_logger,
    log_asset_download,
    log_crawling,
    log_download_failed,
    log_downloaded,
    log_page_complete,
    log_screenshot,
    log_technologies,
)
from ..utils.paths import (
    ensure_dir,
    format_bytes,
    get_hostname,
    normalize_url,
    page_folder_name,
    should_crawl,
)


# Called after each page with (record, pages collected for the current seed)
PageCallback = Callable[[PageRecord, int], None]

# Called for intermediate pipeline steps with (action, url, message)
StepCallback = Callable[[str, str, str], None]


@dataclass
class CrawlOptions:
    """
    Limits and switches for one crawl run.

    ``max_pages`` applies per seed URL; 0 means unlimited. ``delay`` is the
    pause between pages in milliseconds.
    """

    urls: List[str]
    max_pages: int = DEFAULT_MAX_PAGES
    delay: int = DEFAULT_CRAWL_DELAY
    pages_dir: str = DEFAULT_SCREENSHOT_DIR
    output_dir: str = DEFAULT_OUTPUT_DIR
    viewport_width: int = DEFAULT_VIEWPORT_WIDTH
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    full_page: bool = True
    image_format: str = "png"
    quality: int = DEFAULT_SCREENSHOT_QUALITY
    disable_animations: bool = True
    download_assets: bool = False
    download_images: bool = True
    asset_timeout: int = DEFAULT_ASSET_TIMEOUT
    max_asset_size: int = DEFAULT_MAX_ASSET_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    navigation_timeout: int = DEFAULT_PAGE_TIMEOUT
    project_name: Optional[str] = None

    def __post_init__(self):
        if not self.urls:
            raise ValueError("At least one URL is required")
        if self.max_pages < 0:
            raise ValueError("max_pages must be 0 (unlimited) or positive")
        if self.delay < 0:
            raise ValueError("delay must not be negative")
        if self.image_format not in ("png", "jpeg"):
            raise ValueError(f"Unsupported screenshot format: {self.image_format}")
        if not 0 <= self.quality <= 100:
            raise ValueError("quality must be between 0 and 100")

    @property
    def base_url(self) -> str:
        return self.urls[0]

    @property
    def downloads_images(self) -> bool:
        return self.download_assets and self.download_images

    @classmethod
    def from_project(cls, project, project_dir: str) -> "CrawlOptions":
        """Build options from a persisted project, writing into its folder."""
        return cls(
            urls=list(project.urls),
            max_pages=project.max_pages,
            delay=project.delay,
            pages_dir=project_dir,
            output_dir=project_dir,
            viewport_width=project.viewport_width,
            viewport_height=project.viewport_height,
            full_page=project.full_page_screenshots,
            disable_animations=project.disable_animations,
            download_assets=project.download_assets,
            download_images=project.download_images,
            asset_timeout=project.asset_timeout,
            max_asset_size=project.max_asset_size,
            project_name=project.name,
        )


class Frontier:
    """
    FIFO queue of discovered, not-yet-visited URLs.

    Enqueueing is idempotent: a URL whose normalized form is already queued
    or visited is ignored.
    """

    def __init__(self, visited: Set[str]):
        self.visited = visited
        self._queue: Deque[str] = deque()
        self._queued: Set[str] = set()

    def push(self, url: str) -> bool:
        key = normalize_url(url)
        if key in self.visited or key in self._queued:
            return False
        self._queue.append(url)
        self._queued.add(key)
        return True

    def pop(self) -> str:
        url = self._queue.popleft()
        self._queued.discard(normalize_url(url))
        return url

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)


class CrawlSession:
    """
    One crawl run over a single render surface.

    The visited set and page list live for the whole run, so seeds crawled
    one after another through the same session never capture a page twice.
    Links are internal when they share the hostname of ``base_url``.
    """

    def __init__(
        self,
        options: CrawlOptions,
        surface,
        base_url: Optional[str] = None,
        visited: Optional[Set[str]] = None,
        pages: Optional[List[PageRecord]] = None
    ):
        """
        Initialize the crawl session.

        Args:
            options: Crawl limits and switches
            surface: Render surface exclusively owned by this session
            base_url: URL whose hostname anchors internal links (first seed)
            visited: Shared set of normalized visited URLs
            pages: Shared list receiving page records
        """
        self.options = options
        self.surface = surface
        self.base_url = base_url or options.base_url
        self.base_hostname = get_hostname(self.base_url)
        self.visited: Set[str] = visited if visited is not None else set()
        self.pages: List[PageRecord] = pages if pages is not None else []
        self.logger = get_logger("crawler")

        self.extractor = PageExtractor(self.base_url)
        self.detector = TechnologyDetector()
        self.downloader = AssetDownloader(
            timeout=options.asset_timeout,
            max_size=options.max_asset_size,
            concurrency=options.concurrency,
        )
        self._folders: Set[str] = set()

    async def crawl_seed(
        self,
        seed_url: str,
        max_pages: Optional[int] = None,
        on_page: Optional[PageCallback] = None,
        on_step: Optional[StepCallback] = None
    ) -> List[PageRecord]:
        """
        Crawl breadth-first from one seed URL.

        Args:
            seed_url: Starting URL
            max_pages: Page limit for this seed (0 = unlimited)
            on_page: Called after every page, including degraded ones
            on_step: Called for screenshot and asset download steps

        Returns:
            Records collected for this seed, in crawl order
        """
        if max_pages is None:
            max_pages = self.options.max_pages

        frontier = Frontier(self.visited)
        frontier.push(seed_url)
        collected: List[PageRecord] = []

        while frontier and (max_pages == 0 or len(collected) < max_pages):
            url = frontier.pop()
            key = normalize_url(url)
            if key in self.visited:
                continue
            self.visited.add(key)

            log_crawling(url, len(collected) + 1, max_pages)
            record = await self.process_page(url, on_step)
            self.pages.append(record)
            collected.append(record)

            for href in record.internal_links:
                if should_crawl(href, self.base_hostname, self.visited):
                    frontier.push(href)

            if on_page:
                on_page(record, len(collected))

            if frontier and self.options.delay > 0:
                await self.surface.wait(self.options.delay)

        self.logger.info(f"Crawled {len(collected)} pages from {seed_url}")
        return collected

    async def process_page(self, url: str, on_step: Optional[StepCallback] = None) -> PageRecord:
        """
        Run the page pipeline for one URL.

        Never raises: a page that cannot be loaded becomes a degraded record
        with status 0 and empty fields.
        """
        started = time.monotonic()
        try:
            return await self._process_page(url, started, on_step)
        except Exception as e:
            load_time = int((time.monotonic() - started) * 1000)
            self.logger.error(f"Error crawling {url}: {e}")
            return PageRecord(url=url, status_code=0, load_time=load_time)

    async def _process_page(
        self,
        url: str,
        started: float,
        on_step: Optional[StepCallback]
    ) -> PageRecord:
        status_code = await self.surface.navigate(
            url,
            timeout=self.options.navigation_timeout,
            wait_until=DEFAULT_WAIT_UNTIL,
        )
        await self.surface.wait(SETTLE_DELAY_MS)

        if self.options.disable_animations:
            await self.surface.disable_animations()
            await self.surface.wait(ANIMATION_SETTLE_MS)

        load_time = int((time.monotonic() - started) * 1000)

        page_dir = os.path.join(self.options.pages_dir, self._claim_folder(url))
        ensure_dir(page_dir)

        screenshot_path = await self._capture(url, page_dir)
        if screenshot_path and on_step:
            on_step("screenshot", url, "Screenshot captured")

        content, technologies = await asyncio.gather(
            self._extract(url),
            self._detect(url),
        )
        log_technologies([t.name for t in technologies])

        if self.options.downloads_images:
            try:
                await self._download_images(url, content, page_dir, on_step)
            except Exception as e:
                self.logger.warning(f"Image downloads failed for {url}: {e}")

        record = PageRecord(
            url=url,
            title=content.title,
            meta_description=content.meta_description,
            text_content=content.text_content,
            headings=content.headings,
            links=content.links,
            images=content.images,
            structure=content.structure,
            technologies=technologies,
            screenshot_path=screenshot_path,
            status_code=status_code,
            load_time=load_time,
        )

        with open(os.path.join(page_dir, "data.json"), "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, indent=2, ensure_ascii=False)

        log_page_complete(time.monotonic() - started)
        return record

    def _claim_folder(self, url: str) -> str:
        """Per-page folder name, suffixed ``_N`` when already used in this run."""
        base = page_folder_name(url)
        name = base
        counter = 1
        while name in self._folders:
            name = f"{base}_{counter}"
            counter += 1
        self._folders.add(name)
        return name

    async def _capture(self, url: str, page_dir: str) -> Optional[str]:
        extension = "jpg" if self.options.image_format == "jpeg" else "png"
        path = os.path.join(page_dir, f"screenshot.{extension}")
        try:
            await self.surface.screenshot(
                path,
                full_page=self.options.full_page,
                image_type=self.options.image_format,
                quality=self.options.quality,
            )
        except Exception as e:
            self.logger.warning(f"Screenshot failed for {url}: {e}")
            return None
        log_screenshot(path)
        return path

    async def _extract(self, url: str) -> PageContent:
        try:
            return await self.extractor.extract(self.surface, url)
        except Exception as e:
            self.logger.warning(f"Extraction failed for {url}: {e}")
            return PageContent()

    async def _detect(self, url: str):
        try:
            return await self.detector.detect(self.surface)
        except Exception as e:
            self.logger.warning(f"Technology detection failed for {url}: {e}")
            return []

    async def _download_images(
        self,
        url: str,
        content: PageContent,
        page_dir: str,
        on_step: Optional[StepCallback]
    ) -> List[AssetDownloadResult]:
        image_urls = collect_image_urls(content.images)
        if not image_urls:
            return []

        log_asset_download("images", len(image_urls))
        if on_step:
            on_step("downloading_assets", url, f"Downloading {len(image_urls)} images")

        def on_result(completed: int, total: int, result: AssetDownloadResult) -> None:
            name = os.path.basename(result.local_path or result.url)
            if result.success:
                log_downloaded(name, format_bytes(result.size or 0))
            else:
                log_download_failed(name, result.error or "unknown error")
            if on_step:
                on_step("downloading_assets", url, f"Image {completed}/{total}: {name}")

        results = await self.downloader.download_many(
            image_urls,
            os.path.join(page_dir, "images"),
            base_url=url,
            on_result=on_result,
        )
        successful = sum(1 for r in results if r.success)
        self.logger.info(
            f"Assets downloaded: {successful} success, {len(results) - successful} failed"
        )
        return results


class SiteCrawler:
    """
    One-shot crawl of the configured seed URLs.

    Owns the renderer for the duration of ``crawl()``; only a renderer that
    cannot start makes the run fail.
    """

    def __init__(self, options: CrawlOptions, renderer: Optional[PageRenderer] = None):
        self.options = options
        self.renderer = renderer or PageRenderer()
        self.logger = get_logger("crawler")

    async def crawl(
        self,
        on_page: Optional[PageCallback] = None,
        on_step: Optional[StepCallback] = None
    ) -> SiteReport:
        """
        Crawl every seed URL and write the report files.

        Returns:
            SiteReport for the run
        """
        start_time = utc_now()
        started = time.monotonic()

        await self.renderer.start()
        try:
            surface = await self.renderer.open_surface(
                self.options.viewport_width,
                self.options.viewport_height,
            )
            try:
                session = CrawlSession(self.options, surface)
                for seed in self.options.urls:
                    await session.crawl_seed(seed, self.options.max_pages, on_page, on_step)
            finally:
                await surface.close()
        finally:
            await self.renderer.stop()

        report = build_report(
            base_url=self.options.base_url,
            base_urls=self.options.urls,
            pages=session.pages,
            start_time=start_time,
            end_time=utc_now(),
            duration=round(time.monotonic() - started, 3),
        )
        save_report(report, self.options.output_dir, self.options.project_name)
        return report


async def crawl_site(options: CrawlOptions, renderer: Optional[PageRenderer] = None) -> SiteReport:
    """Crawl a site with the given options and return its report."""
    return await SiteCrawler(options, renderer).crawl()
