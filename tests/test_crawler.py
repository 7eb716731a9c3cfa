"""Tests for the crawl engine and report assembly."""

import json
import os

import pytest

from site_scraper.crawler.crawler import CrawlOptions, CrawlSession, Frontier, crawl_site
from site_scraper.crawler.report import generate_summary
from site_scraper.models import AssetDownloadResult, Confidence, PageRecord
from site_scraper.utils.paths import normalize_url
from tests.conftest import FakeRenderer, FakeSurface


@pytest.fixture
def options(tmp_path):
    return CrawlOptions(
        urls=["https://example.com/"],
        max_pages=10,
        delay=0,
        pages_dir=str(tmp_path / "pages"),
        output_dir=str(tmp_path / "output"),
    )


class FakeDownloader:
    """Records download requests instead of fetching anything."""

    def __init__(self):
        self.calls = []

    async def download_many(self, urls, dest_dir, base_url=None, on_result=None):
        self.calls.append((list(urls), dest_dir, base_url))
        results = []
        for index, url in enumerate(urls, 1):
            result = AssetDownloadResult(url=url, success=True, local_path=os.path.join(dest_dir, "a.jpg"), size=10)
            results.append(result)
            if on_result:
                on_result(index, len(urls), result)
        return results


@pytest.mark.asyncio
async def test_crawl_fixture_site_end_to_end(options, fake_renderer, fake_surface):
    """Test the 4-page fixture site crawl."""
    report = await crawl_site(options, fake_renderer)

    assert report.total_pages == 4
    assert [p.url for p in report.pages] == [
        "https://example.com/",
        "https://example.com/about",
        "https://example.com/blog/",
        "https://example.com/contact",
    ]

    # External links are never marked internal
    for page in report.pages:
        for link in page.links:
            if "external.com" in link.href:
                assert not link.is_internal

    # The .png link never reached the frontier
    assert not any(url.endswith(".png") for url in fake_surface.navigated)
    assert fake_renderer.started and fake_renderer.stopped
    assert fake_surface.closed


@pytest.mark.asyncio
async def test_crawl_writes_page_and_report_files(options, fake_renderer, tmp_path):
    report = await crawl_site(options, fake_renderer)

    for folder in ("index", "about", "blog", "contact"):
        assert os.path.exists(tmp_path / "pages" / folder / "screenshot.png")
        assert os.path.exists(tmp_path / "pages" / folder / "data.json")

    with open(tmp_path / "pages" / "index" / "data.json", encoding="utf-8") as f:
        data = json.load(f)
    assert data["url"] == "https://example.com/"
    assert data["statusCode"] == 200
    assert "scrapedAt" in data

    with open(tmp_path / "output" / "report.json", encoding="utf-8") as f:
        saved = json.load(f)
    assert saved["baseUrl"] == "https://example.com/"
    assert saved["totalPages"] == 4
    assert len(saved["siteStructure"]) == 4

    with open(tmp_path / "output" / "summary.txt", encoding="utf-8") as f:
        assert "Total Pages: 4" in f.read()
    assert report.pages[0].screenshot_path.endswith(os.path.join("index", "screenshot.png"))


@pytest.mark.asyncio
async def test_crawl_aggregates_technologies(options, fake_renderer):
    report = await crawl_site(options, fake_renderer)
    found = {t.name: t for t in report.technologies}

    assert found["jQuery"].confidence is Confidence.HIGH
    assert found["WordPress"].version == "6.4.2"
    assert found["React"].confidence is Confidence.MEDIUM
    assert len(report.technologies) == len(found)


@pytest.mark.asyncio
async def test_site_structure_lists_distinct_internal_targets(options, fake_renderer):
    report = await crawl_site(options, fake_renderer)
    about = next(e for e in report.site_structure if e.url == "https://example.com/about")

    assert about.title == "About Us"
    assert about.children == [
        "https://example.com/",
        "https://example.com/about",
        "https://example.com/about#team",
    ]


@pytest.mark.asyncio
async def test_max_pages_limit(options, fake_renderer):
    options.max_pages = 2
    report = await crawl_site(options, fake_renderer)
    assert report.total_pages == 2


@pytest.mark.asyncio
async def test_unlimited_pages_terminates_on_cycles(options, fake_renderer):
    """Test that pages linking back to each other do not loop forever."""
    options.max_pages = 0
    report = await crawl_site(options, fake_renderer)

    normalized = [normalize_url(p.url) for p in report.pages]
    assert len(normalized) == len(set(normalized)) == 4


@pytest.mark.asyncio
async def test_failed_page_is_degraded_not_fatal(options, fixture_site):
    """Test that one page failing to load does not stop the crawl."""
    surface = FakeSurface(fixture_site, failing={"https://example.com/blog"})
    report = await crawl_site(options, FakeRenderer(surface))

    assert report.total_pages == 4
    blog = next(p for p in report.pages if "blog" in p.url)
    assert blog.status_code == 0
    assert blog.title == ""
    assert blog.links == []
    assert blog.load_time >= 0
    assert report.pages[-1].url == "https://example.com/contact"
    assert report.pages[-1].status_code == 200


@pytest.mark.asyncio
async def test_screenshot_failure_keeps_page(options, fixture_site):
    surface = FakeSurface(fixture_site, screenshot_error=RuntimeError("capture failed"))
    report = await crawl_site(options, FakeRenderer(surface))

    assert report.total_pages == 4
    assert all(p.screenshot_path is None for p in report.pages)
    assert all(p.status_code == 200 for p in report.pages)


@pytest.mark.asyncio
async def test_renderer_start_failure_is_fatal(options, fake_surface):
    renderer = FakeRenderer(fake_surface, start_error=RuntimeError("browser missing"))
    with pytest.raises(RuntimeError, match="browser missing"):
        await crawl_site(options, renderer)


@pytest.mark.asyncio
async def test_animation_suppression_and_delays(options, fake_renderer, fake_surface):
    options.delay = 250
    await crawl_site(options, fake_renderer)

    assert fake_surface.animation_overrides == 4
    assert fake_surface.waits.count(500) == 4
    assert fake_surface.waits.count(100) == 4
    # No politeness delay after the last page
    assert fake_surface.waits.count(250) == 3


@pytest.mark.asyncio
async def test_animation_suppression_can_be_disabled(options, fake_renderer, fake_surface):
    options.disable_animations = False
    await crawl_site(options, fake_renderer)
    assert fake_surface.animation_overrides == 0
    assert fake_surface.styles == []


@pytest.mark.asyncio
async def test_seeds_share_visited_set(options, fake_renderer):
    """Test that a URL reached from two seeds is captured once."""
    options.urls = ["https://example.com/", "https://example.com/about/"]
    report = await crawl_site(options, fake_renderer)
    assert report.total_pages == 4
    assert report.to_dict()["baseUrls"] == options.urls


@pytest.mark.asyncio
async def test_page_folders_are_deduplicated(options, tmp_path):
    site = {
        "https://example.com/": '<a href="/ab">1</a><a href="/a.b">2</a>',
        "https://example.com/ab": "<p>one</p>",
        "https://example.com/a.b": "<p>two</p>",
    }
    session = CrawlSession(options, FakeSurface(site))
    pages = await session.crawl_seed("https://example.com/")

    folders = [os.path.basename(os.path.dirname(p.screenshot_path)) for p in pages]
    assert folders == ["index", "ab", "ab_1"]


@pytest.mark.asyncio
async def test_images_downloaded_into_page_folder(options, fake_surface):
    """Test image downloads and step notifications when enabled."""
    options.download_assets = True
    session = CrawlSession(options, fake_surface)
    session.downloader = FakeDownloader()
    steps = []

    await session.crawl_seed("https://example.com/", 1, on_step=lambda *args: steps.append(args))

    ((urls, dest_dir, base_url),) = session.downloader.calls
    assert urls == ["https://example.com/images/hero.jpg"]
    assert dest_dir == os.path.join(options.pages_dir, "index", "images")
    assert base_url == "https://example.com/"
    actions = [action for action, _, _ in steps]
    assert actions[0] == "screenshot"
    assert actions.count("downloading_assets") == 2


class BrokenDownloader:
    async def download_many(self, urls, dest_dir, base_url=None, on_result=None):
        raise UnicodeError("label empty or too long")


@pytest.mark.asyncio
async def test_download_failure_keeps_page(options, fake_surface):
    """Test that a failing image download leaves the page record intact."""
    options.download_assets = True
    session = CrawlSession(options, fake_surface)
    session.downloader = BrokenDownloader()

    pages = await session.crawl_seed("https://example.com/", 2)

    assert pages[0].status_code == 200
    assert pages[0].title == "Fixture Home"
    assert pages[0].internal_links
    assert [p.url for p in pages] == ["https://example.com/", "https://example.com/about"]


@pytest.mark.asyncio
async def test_images_skipped_when_disabled(options, fake_surface):
    options.download_assets = True
    options.download_images = False
    session = CrawlSession(options, fake_surface)
    session.downloader = FakeDownloader()

    await session.crawl_seed("https://example.com/", 1)
    assert session.downloader.calls == []


@pytest.mark.asyncio
async def test_on_page_receives_running_count(options, fake_surface):
    seen = []
    session = CrawlSession(options, fake_surface)
    await session.crawl_seed("https://example.com/", 3, on_page=lambda record, n: seen.append(n))
    assert seen == [1, 2, 3]


def test_frontier_enqueue_is_idempotent():
    visited = {"https://x.com/done"}
    frontier = Frontier(visited)

    assert frontier.push("https://x.com/a")
    assert not frontier.push("https://x.com/a/")
    assert not frontier.push("https://x.com/a#frag")
    assert not frontier.push("https://x.com/done/")
    assert frontier.push("https://x.com/b")
    assert len(frontier) == 2
    assert frontier.pop() == "https://x.com/a"
    assert frontier.pop() == "https://x.com/b"
    assert not frontier


def test_crawl_options_validation():
    with pytest.raises(ValueError):
        CrawlOptions(urls=[])
    with pytest.raises(ValueError):
        CrawlOptions(urls=["https://x.com/"], max_pages=-1)
    with pytest.raises(ValueError):
        CrawlOptions(urls=["https://x.com/"], image_format="gif")


def test_generate_summary_format():
    """Test the exact summary.txt layout."""
    from site_scraper.crawler.report import build_report
    from site_scraper.models import TechnologyMatch

    page = PageRecord(
        url="https://x.com/",
        links=[],
        technologies=[TechnologyMatch("Vue.js", "framework", Confidence.HIGH, "3.2.1")],
        screenshot_path="pages/index/screenshot.png",
        load_time=120,
    )
    report = build_report("https://x.com/", [page], "S", "E", 1.5)

    assert generate_summary(report, "Demo").split("\n") == [
        "=" * 60,
        "SITE SCRAPER REPORT - Demo",
        "=" * 60,
        "",
        "Base URL: https://x.com/",
        "Total Pages: 1",
        "Duration: 1.50 seconds",
        "Start: S",
        "End: E",
        "",
        "-" * 60,
        "DETECTED TECHNOLOGIES",
        "-" * 60,
        "  - Vue.js v3.2.1 (framework, high confidence)",
        "",
        "-" * 60,
        "PAGES SCRAPED",
        "-" * 60,
        "  https://x.com/",
        "    Title: (no title)",
        "    Links: 0 | Images: 0 | Load time: 120ms",
        "    Screenshot: pages/index/screenshot.png",
        "",
    ]


def test_generate_summary_without_technologies():
    from site_scraper.crawler.report import build_report

    empty = build_report("https://x.com/", [], "S", "E", 0)
    summary = generate_summary(empty)

    assert summary.startswith("=" * 60 + "\nSITE SCRAPER REPORT\n")
    assert "DETECTED TECHNOLOGIES\n" + "-" * 60 + "\nNo technologies detected\n" in summary
    assert summary.endswith("PAGES SCRAPED\n" + "-" * 60)
