"""
Page renderer using Playwright for JavaScript rendering.

Owns the headless browser and hands out page surfaces: loaded pages that can
be queried, screenshotted and stripped of animations.
"""

import asyncio
from typing import Any, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from ..utils.log import get_logger
from ..utils.constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_PAGE_TIMEOUT,
    DEFAULT_WAIT_UNTIL,
    DEFAULT_VIEWPORT_WIDTH,
    DEFAULT_VIEWPORT_HEIGHT,
)


# Zeroes animation and transition timing on every element and pseudo-element
DISABLE_ANIMATIONS_CSS = """
*, *::before, *::after {
  animation-duration: 0s !important;
  animation-delay: 0s !important;
  transition-duration: 0s !important;
  transition-delay: 0s !important;
  scroll-behavior: auto !important;
}
"""

# requestAnimationFrame runs its callback synchronously with a zero timestamp,
# cancelAnimationFrame becomes a no-op and running Web Animations are finished.
OVERRIDE_ANIMATION_APIS_JS = """
() => {
  window.requestAnimationFrame = (callback) => {
    callback(0);
    return 0;
  };
  window.cancelAnimationFrame = () => {};
  try {
    const animations = document.getAnimations ? document.getAnimations() : [];
    for (const animation of animations) {
      animation.finish();
    }
  } catch (e) {
    // Web Animations API unavailable or an animation cannot finish
  }
}
"""


class PageSurface:
    """
    A single browser tab used for one crawl run.

    Pages are loaded one after another into the same tab; the surface is
    never shared between concurrent crawls.
    """

    def __init__(self, page: Page, context: Optional[BrowserContext] = None):
        self.page = page
        self._context = context
        self.logger = get_logger("renderer")

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(
        self,
        url: str,
        timeout: int = DEFAULT_PAGE_TIMEOUT,
        wait_until: str = DEFAULT_WAIT_UNTIL
    ) -> int:
        """
        Load a URL and wait for the page to settle.

        Args:
            url: URL to load
            timeout: Navigation timeout in milliseconds
            wait_until: Playwright load state to wait for

        Returns:
            HTTP status code (200 when the browser reports no response)

        Raises:
            playwright.async_api.Error: on timeout or network failure
        """
        self.logger.debug(f"Navigating: {url}")
        response = await self.page.goto(url, wait_until=wait_until, timeout=timeout)
        if response is None:
            return 200
        return response.status or 200

    async def content(self) -> str:
        """Return the rendered DOM as HTML."""
        return await self.page.content()

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run a read-only JavaScript query against the live document."""
        if arg is None:
            return await self.page.evaluate(expression)
        return await self.page.evaluate(expression, arg)

    async def inject_style(self, css: str) -> None:
        await self.page.add_style_tag(content=css)

    async def override_animation_apis(self) -> None:
        await self.page.evaluate(OVERRIDE_ANIMATION_APIS_JS)

    async def disable_animations(self) -> None:
        """Neutralize CSS and JavaScript animations before a capture."""
        await self.inject_style(DISABLE_ANIMATIONS_CSS)
        await self.override_animation_apis()

    async def screenshot(
        self,
        path: str,
        full_page: bool = True,
        image_type: str = "png",
        quality: Optional[int] = None
    ) -> str:
        """
        Capture the page to a file.

        Args:
            path: Destination file path
            full_page: Capture the whole scrollable page instead of the viewport
            image_type: 'png' or 'jpeg'
            quality: JPEG quality 0-100 (ignored for PNG)

        Returns:
            The path written
        """
        options = {"path": path, "full_page": full_page, "type": image_type}
        if image_type == "jpeg" and quality is not None:
            options["quality"] = quality
        await self.page.screenshot(**options)
        return path

    async def wait(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000)

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        elif not self.page.is_closed():
            await self.page.close()


class PageRenderer:
    """
    Renders web pages using a Playwright headless browser.
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        """
        Initialize the page renderer.

        Args:
            headless: Run browser in headless mode
            user_agent: User agent announced by every surface
        """
        self.headless = headless
        self.user_agent = user_agent
        self.logger = get_logger("renderer")

        self._playwright = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        """
        Start the Playwright browser instance.

        Failure here is fatal for a crawl run.
        """
        self.logger.info("Starting Playwright browser...")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    '--no-sandbox',
                    '--disable-setuid-sandbox',
                    '--disable-dev-shm-usage',
                ]
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        self.logger.info("Browser started successfully")

    async def stop(self) -> None:
        """
        Stop the Playwright browser instance.
        """
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self.logger.info("Browser stopped")

    async def open_surface(
        self,
        viewport_width: int = DEFAULT_VIEWPORT_WIDTH,
        viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    ) -> PageSurface:
        """
        Open a fresh browser context and tab.

        Args:
            viewport_width: Viewport width in pixels
            viewport_height: Viewport height in pixels

        Returns:
            PageSurface owning the new tab; the caller must close it
        """
        if not self._browser:
            await self.start()

        context = await self._browser.new_context(
            user_agent=self.user_agent,
            viewport={"width": viewport_width, "height": viewport_height},
            ignore_https_errors=True,
        )
        page = await context.new_page()
        return PageSurface(page, context)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
