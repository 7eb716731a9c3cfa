"""Pytest configuration and fixtures."""

import os

import pytest

from site_scraper.utils.paths import normalize_url


ROOT_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Fixture Home</title>
    <meta name="description" content="Home of the fixture site">
    <meta name="generator" content="WordPress 6.4.2">
    <script src="https://cdn.example.com/jquery-3.6.0/jquery.min.js"></script>
</head>
<body>
    <header id="top" class="site-header"><h1>Welcome</h1></header>
    <nav>
        <a href="/about">About</a>
        <a href="/blog/">Blog</a>
        <a href="contact">Contact</a>
        <a href="https://external.com/page">External</a>
        <a href="/logo.png">Logo</a>
        <a href="mailto:hello@example.com">Mail</a>
    </nav>
    <main>
        <p>Fixture   site
           text.</p>
        <img src="/images/hero.jpg" alt="Hero" width="800" height="400">
        <img src="data:image/gif;base64,R0lGODlhAQABAAAAACw=" alt="Pixel">
    </main>
    <script>console.log('inline');</script>
</body>
</html>
"""

ABOUT_HTML = """
<html>
<head><title>About Us</title></head>
<body>
    <h2>Team</h2>
    <a href="/">Home</a>
    <a href="/about">About (self)</a>
    <a href="/about#team">Team</a>
    <div data-reactroot><span>app</span></div>
</body>
</html>
"""

BLOG_HTML = """
<html>
<head><title>Blog</title></head>
<body>
    <h2>Posts</h2>
    <a href="/">Home</a>
    <a href="/about/">About</a>
</body>
</html>
"""

CONTACT_HTML = """
<html>
<head><title>Contact</title></head>
<body>
    <form id="contact"><input name="email"></form>
    <a href="/blog">Blog</a>
</body>
</html>
"""


@pytest.fixture
def fixture_site():
    """A 4-page site: the root links to three internal pages."""
    return {
        "https://example.com/": ROOT_HTML,
        "https://example.com/about": ABOUT_HTML,
        "https://example.com/blog": BLOG_HTML,
        "https://example.com/contact": CONTACT_HTML,
    }


class FakeSurface:
    """In-memory render surface serving fixture HTML."""

    def __init__(self, site, globals_present=(), failing=(), screenshot_error=None):
        self.site = {normalize_url(url): html for url, html in site.items()}
        self.globals_present = set(globals_present)
        self.failing = {normalize_url(url) for url in failing}
        self.screenshot_error = screenshot_error
        self.navigated = []
        self.styles = []
        self.animation_overrides = 0
        self.waits = []
        self.closed = False
        self._html = ""

    @property
    def url(self):
        return self.navigated[-1] if self.navigated else "about:blank"

    async def navigate(self, url, timeout=30000, wait_until="networkidle"):
        self.navigated.append(url)
        key = normalize_url(url)
        if key in self.failing:
            raise RuntimeError(f"net::ERR_CONNECTION_REFUSED at {url}")
        if key not in self.site:
            self._html = "<html><head><title>Not Found</title></head><body></body></html>"
            return 404
        self._html = self.site[key]
        return 200

    async def content(self):
        return self._html

    async def evaluate(self, expression, arg=None):
        if isinstance(arg, list):
            return [name for name in arg if name in self.globals_present]
        return None

    async def inject_style(self, css):
        self.styles.append(css)

    async def override_animation_apis(self):
        self.animation_overrides += 1

    async def disable_animations(self):
        await self.inject_style("* { animation-duration: 0s !important; }")
        await self.override_animation_apis()

    async def screenshot(self, path, full_page=True, image_type="png", quality=None):
        if self.screenshot_error:
            raise self.screenshot_error
        with open(path, "wb") as f:
            f.write(b"\x89PNG\r\n\x1a\nfake")
        return path

    async def wait(self, ms):
        self.waits.append(ms)

    async def close(self):
        self.closed = True


class FakeRenderer:
    """Renderer handing out a single FakeSurface."""

    def __init__(self, surface, start_error=None):
        self.surface = surface
        self.start_error = start_error
        self.started = False
        self.stopped = False
        self.viewport = None

    async def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    async def stop(self):
        self.stopped = True

    async def open_surface(self, viewport_width=1920, viewport_height=1080):
        self.viewport = (viewport_width, viewport_height)
        return self.surface


@pytest.fixture
def fake_surface(fixture_site):
    return FakeSurface(fixture_site, globals_present={"jQuery"})


@pytest.fixture
def fake_renderer(fake_surface):
    return FakeRenderer(fake_surface)


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "scraped-data"
    os.makedirs(path)
    return str(path)
