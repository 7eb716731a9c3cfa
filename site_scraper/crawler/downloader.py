"""
Asset downloader for fetching and saving page resources.

Uses aiohttp for concurrent asynchronous downloads with a bounded number of
requests in flight, per-asset timeouts and size limits.
"""

import asyncio
import os
from typing import Callable, List, Optional, Sequence, Set
from urllib.parse import urljoin, urlparse

import aiohttp
from aiohttp import ClientTimeout, ClientError

from ..models import AssetDownloadResult
from ..utils.constants import (
    DEFAULT_ASSET_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_ASSET_SIZE,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_USER_AGENT,
)
from ..utils.log import get_logger
from ..utils.paths import ensure_dir, resolve_url, sanitize_filename, unique_filename


# Called after every finished download with (completed, total, result)
ProgressCallback = Callable[[int, int, AssetDownloadResult], None]

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

DATA_URL_ERROR = "Skipped data URL (embedded content)"

CHUNK_SIZE = 64 * 1024


class DownloadError(Exception):
    """A single asset could not be fetched."""


class AssetDownloader:
    """
    Downloads assets to a local directory.

    Each download is independent: failures are reported as unsuccessful
    results and never retried.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_ASSET_TIMEOUT,
        max_size: int = DEFAULT_MAX_ASSET_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        """
        Initialize the asset downloader.

        Args:
            timeout: Wall-clock limit per asset in milliseconds
            max_size: Maximum asset size in bytes
            concurrency: Maximum downloads in flight
            max_redirects: Redirect hops followed before giving up
            user_agent: User agent string for requests
        """
        self.timeout = timeout
        self.max_size = max_size
        self.concurrency = max(1, concurrency)
        self.max_redirects = max_redirects
        self.user_agent = user_agent
        self.logger = get_logger("downloader")

        # Filenames claimed by downloads that have not finished yet, per directory
        self._reserved: dict = {}

    async def download_many(
        self,
        urls: Sequence[str],
        dest_dir: str,
        base_url: Optional[str] = None,
        on_result: Optional[ProgressCallback] = None
    ) -> List[AssetDownloadResult]:
        """
        Download several assets with at most ``concurrency`` in flight.

        Args:
            urls: Asset URLs (relative ones are resolved against base_url)
            dest_dir: Destination directory
            base_url: URL used to resolve relative references
            on_result: Called as each download finishes, in completion order

        Returns:
            One result per URL, in input order
        """
        if not urls:
            return []

        total = len(urls)
        completed = 0
        results: List[Optional[AssetDownloadResult]] = [None] * total
        semaphore = asyncio.Semaphore(self.concurrency)

        async with self._session() as session:

            async def run(index: int, url: str) -> None:
                nonlocal completed
                result = await self._download(session, url, dest_dir, base_url, semaphore)
                results[index] = result
                completed += 1
                if on_result:
                    on_result(completed, total, result)

            await asyncio.gather(*(run(i, url) for i, url in enumerate(urls)))

        successful = sum(1 for r in results if r.success)
        self.logger.debug(
            f"Downloaded {successful} assets, {total - successful} failed"
        )
        return results

    async def download(
        self,
        url: str,
        dest_dir: str,
        base_url: Optional[str] = None
    ) -> AssetDownloadResult:
        """
        Download a single asset.

        Args:
            url: Asset URL
            dest_dir: Destination directory
            base_url: URL used to resolve relative references

        Returns:
            AssetDownloadResult describing the outcome
        """
        async with self._session() as session:
            return await self._download(session, url, dest_dir, base_url)

    def _session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(headers={"User-Agent": self.user_agent})

    async def _download(
        self,
        session: aiohttp.ClientSession,
        url: str,
        dest_dir: str,
        base_url: Optional[str],
        semaphore: Optional[asyncio.Semaphore] = None
    ) -> AssetDownloadResult:
        resolved = resolve_url(url, base_url)
        if resolved.startswith('data:'):
            return AssetDownloadResult(url=url, success=False, error=DATA_URL_ERROR)

        parsed = urlparse(resolved)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return AssetDownloadResult(url=url, success=False, error=f"Invalid URL: {url}")

        # Claim the filename before waiting for a slot so names follow input order
        ensure_dir(dest_dir)
        reserved = self._reserved.setdefault(os.path.abspath(dest_dir), set())
        filename = unique_filename(dest_dir, sanitize_filename(parsed.path), reserved)
        reserved.add(filename)
        local_path = os.path.join(dest_dir, filename)

        try:
            if semaphore is None:
                size = await self._fetch_with_timeout(session, resolved, local_path)
            else:
                async with semaphore:
                    size = await self._fetch_with_timeout(session, resolved, local_path)
        except DownloadError as e:
            self.logger.debug(f"Download failed for {resolved}: {e}")
            return AssetDownloadResult(url=url, success=False, error=str(e))
        except ClientError as e:
            self.logger.debug(f"Client error downloading {resolved}: {e}")
            return AssetDownloadResult(url=url, success=False, error=str(e) or type(e).__name__)
        except OSError as e:
            self.logger.debug(f"OS error saving {resolved}: {e}")
            return AssetDownloadResult(url=url, success=False, error=str(e))
        except Exception as e:
            self.logger.warning(f"Unexpected error downloading {resolved}: {e}")
            return AssetDownloadResult(url=url, success=False, error=str(e) or type(e).__name__)
        finally:
            reserved.discard(filename)

        self.logger.debug(f"Downloaded: {resolved} -> {local_path}")
        return AssetDownloadResult(url=url, success=True, local_path=local_path, size=size)

    async def _fetch_with_timeout(
        self,
        session: aiohttp.ClientSession,
        url: str,
        local_path: str
    ) -> int:
        try:
            return await asyncio.wait_for(
                self._fetch(session, url, local_path),
                timeout=self.timeout / 1000
            )
        except asyncio.TimeoutError:
            raise DownloadError(f"Download timed out after {self.timeout}ms")

    async def _fetch(
        self,
        session: aiohttp.ClientSession,
        url: str,
        local_path: str
    ) -> int:
        """
        Fetch a URL and stream its body to local_path.

        The body is written to a temporary ``.part`` file that only replaces
        the final path once the whole body arrived within the size limit.
        """
        redirects = 0
        while True:
            async with session.get(url, allow_redirects=False, timeout=ClientTimeout(total=None)) as response:
                location = response.headers.get('Location')
                if response.status in REDIRECT_STATUSES and location:
                    if redirects >= self.max_redirects:
                        raise DownloadError("Too many redirects")
                    redirects += 1
                    url = urljoin(url, location)
                    continue

                if response.status != 200:
                    raise DownloadError(f"HTTP {response.status}")

                if response.content_length is not None and response.content_length > self.max_size:
                    raise DownloadError(
                        f"File too large: {response.content_length} bytes (max: {self.max_size})"
                    )

                return await self._stream_to_file(response, local_path)

    async def _stream_to_file(self, response: aiohttp.ClientResponse, local_path: str) -> int:
        part_path = f"{local_path}.part"
        downloaded = 0
        try:
            with open(part_path, 'wb') as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    downloaded += len(chunk)
                    if downloaded > self.max_size:
                        raise DownloadError(f"File too large: exceeded {self.max_size} bytes")
                    f.write(chunk)
            os.replace(part_path, local_path)
        except BaseException:
            if os.path.exists(part_path):
                os.remove(part_path)
            raise
        return downloaded


def collect_image_urls(images) -> List[str]:
    """Image sources worth downloading: non-empty, not embedded, unique."""
    seen: Set[str] = set()
    urls = []
    for image in images:
        src = image.src
        if not src or src.startswith('data:') or src in seen:
            continue
        seen.add(src)
        urls.append(src)
    return urls
