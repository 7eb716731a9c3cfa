"""
Single-page site cloner.

Loads one page in the browser, downloads its stylesheets, scripts and
images, and saves an ``index.html`` whose references point at the local
copies.
"""

import json
import os
import re
import time
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from .downloader import AssetDownloader
from .renderer import PageRenderer
from ..models import ClonedAsset, CloneResult, utc_now
from ..utils.constants import DEFAULT_CLONE_DIR, DEFAULT_PAGE_TIMEOUT, SETTLE_DELAY_MS
from ..utils.html import parse_html
from ..utils.log import get_logger, print_info, print_success
from ..utils.paths import ensure_dir, get_relative_path, resolve_url, site_folder_name


CSS_URL_PATTERN = re.compile(r'url\(\s*["\']?([^"\')\s]+)["\']?\s*\)')

ASSET_DIRS = {"css": "css", "js": "js", "image": "images"}


class SiteCloner:
    """
    Clones a single page and its static assets to local storage.
    """

    def __init__(
        self,
        url: str,
        output_dir: Optional[str] = None,
        download_images: bool = True,
        download_css: bool = True,
        download_js: bool = True,
        timeout: int = DEFAULT_PAGE_TIMEOUT,
        renderer: Optional[PageRenderer] = None,
        downloader: Optional[AssetDownloader] = None
    ):
        """
        Initialize the site cloner.

        Args:
            url: Page URL to clone
            output_dir: Destination (defaults to ./cloned-sites/<hostname>)
            download_images: Download <img> sources and inline background images
            download_css: Download linked stylesheets
            download_js: Download external scripts
            timeout: Navigation timeout in milliseconds
            renderer: Page renderer to use
            downloader: Asset downloader to use
        """
        self.url = url
        self.output_dir = output_dir or os.path.join(DEFAULT_CLONE_DIR, site_folder_name(url))
        self.download_images = download_images
        self.download_css = download_css
        self.download_js = download_js
        self.timeout = timeout
        self.renderer = renderer or PageRenderer()
        self.downloader = downloader or AssetDownloader()
        self.logger = get_logger("cloner")

        self.assets: List[ClonedAsset] = []
        self.errors: List[str] = []

    async def clone(self) -> CloneResult:
        """
        Clone the page.

        Returns:
            CloneResult listing every saved file and any download errors
        """
        start_time = utc_now()
        started = time.monotonic()

        print_info(f"Starting clone of {self.url}")
        print_info(f"Output directory: {self.output_dir}")

        self._ensure_output_dirs()

        await self.renderer.start()
        try:
            surface = await self.renderer.open_surface()
            try:
                await surface.navigate(self.url, timeout=self.timeout)
                await surface.wait(SETTLE_DELAY_MS)
                html = await surface.content()
            finally:
                await surface.close()
        finally:
            await self.renderer.stop()

        soup = parse_html(html)
        mapping: Dict[str, str] = {}
        for kind, urls in self._collect_asset_urls(soup).items():
            mapping.update(await self._download(kind, urls))

        html_path = self._save_html(soup, mapping)

        result = CloneResult(
            url=self.url,
            output_dir=self.output_dir,
            html_path=html_path,
            assets=list(self.assets),
            start_time=start_time,
            end_time=utc_now(),
            duration=round(time.monotonic() - started, 3),
            errors=list(self.errors),
        )

        report_path = os.path.join(self.output_dir, "clone-report.json")
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)

        print_success(
            f"Clone complete! {result.total_assets} files in {result.duration:.1f}s"
        )
        if self.errors:
            self.logger.warning(f"{len(self.errors)} assets could not be downloaded")
        return result

    def _ensure_output_dirs(self) -> None:
        for sub in ASSET_DIRS.values():
            ensure_dir(os.path.join(self.output_dir, "assets", sub))

    def _collect_asset_urls(self, soup: BeautifulSoup) -> Dict[str, List[str]]:
        """Absolute asset URLs per kind, deduplicated, data URLs excluded."""
        found: Dict[str, List[str]] = {"css": [], "js": [], "image": []}

        if self.download_css:
            for link in soup.find_all('link', href=True):
                if 'stylesheet' in (link.get('rel') or []):
                    found["css"].append(link['href'])
        if self.download_js:
            for script in soup.find_all('script', src=True):
                found["js"].append(script['src'])
        if self.download_images:
            for img in soup.find_all('img'):
                src = img.get('src') or img.get('data-src')
                if src:
                    found["image"].append(src)
            for element in soup.find_all(style=re.compile('background')):
                found["image"].extend(CSS_URL_PATTERN.findall(element['style']))

        collected = {}
        for kind, urls in found.items():
            absolute = [
                resolve_url(url, self.url) for url in urls
                if url.strip() and not url.strip().startswith('data:')
            ]
            collected[kind] = list(dict.fromkeys(absolute))
        return collected

    async def _download(self, kind: str, urls: List[str]) -> Dict[str, str]:
        if not urls:
            return {}

        dest_dir = os.path.join(self.output_dir, "assets", ASSET_DIRS[kind])
        results = await self.downloader.download_many(urls, dest_dir, base_url=self.url)

        mapping = {}
        for result in results:
            if result.success:
                self.assets.append(ClonedAsset(
                    original_url=result.url,
                    local_path=result.local_path,
                    type=kind,
                    size=result.size or 0,
                ))
                mapping[result.url] = result.local_path
            else:
                self.errors.append(f"Failed to download {result.url}: {result.error}")
        return mapping

    def _save_html(self, soup: BeautifulSoup, mapping: Dict[str, str]) -> str:
        html_path = os.path.join(self.output_dir, "index.html")

        def local(url: str) -> Optional[str]:
            local_path = mapping.get(resolve_url(url, self.url))
            if local_path is None:
                return None
            return get_relative_path(html_path, local_path)

        for tag, attr in (('link', 'href'), ('script', 'src'), ('img', 'src'), ('img', 'data-src')):
            for element in soup.find_all(tag, attrs={attr: True}):
                rewritten = local(element[attr])
                if rewritten:
                    element[attr] = rewritten

        for element in soup.find_all(style=re.compile('background')):
            element['style'] = CSS_URL_PATTERN.sub(
                lambda m: f"url('{local(m.group(1)) or m.group(1)}')",
                element['style'],
            )

        html = str(soup)
        with open(html_path, "w", encoding="utf-8") as f:
            f.write(html)

        self.assets.append(ClonedAsset(
            original_url=self.url,
            local_path=html_path,
            type="html",
            size=len(html.encode("utf-8")),
        ))
        return html_path
