"""Tests for technology detection and aggregation."""

import re

import pytest

from site_scraper.analyzer.technologies import (
    ELEMENT,
    META,
    SCRIPT,
    Signal,
    TechPattern,
    TechnologyDetector,
)
from site_scraper.crawler.report import aggregate_technologies
from site_scraper.models import Confidence, PageRecord, TechnologyMatch
from tests.conftest import FakeSurface


def _by_name(matches):
    return {m.name: m for m in matches}


def test_script_source_match_extracts_version(fixture_site):
    """Test a script src match with version extraction."""
    detector = TechnologyDetector()
    signals = detector.collect_signals(fixture_site["https://example.com/"], set())
    found = _by_name(detector.detect_in(signals))

    assert found["jQuery"].confidence is Confidence.HIGH
    assert found["jQuery"].version == "3.6.0"
    assert found["jQuery"].category == "library"


def test_global_symbol_short_circuits(fixture_site):
    """Test that a high-confidence global stops evaluation of later signals."""
    detector = TechnologyDetector()
    signals = detector.collect_signals(fixture_site["https://example.com/"], {"jQuery"})
    found = _by_name(detector.detect_in(signals))

    assert found["jQuery"].confidence is Confidence.HIGH
    assert found["jQuery"].version is None


def test_generator_meta_version(fixture_site):
    detector = TechnologyDetector()
    signals = detector.collect_signals(fixture_site["https://example.com/"], set())
    wordpress = _by_name(detector.detect_in(signals))["WordPress"]

    assert wordpress.confidence is Confidence.HIGH
    assert wordpress.version == "6.4.2"


def test_generator_meta_requires_wordpress_content():
    detector = TechnologyDetector()
    html = '<html><head><meta name="generator" content="Hugo 0.120"></head></html>'
    found = _by_name(detector.detect_in(detector.collect_signals(html, set())))
    assert "WordPress" not in found


def test_element_selector_is_medium(fixture_site):
    detector = TechnologyDetector()
    signals = detector.collect_signals(fixture_site["https://example.com/about"], set())
    react = _by_name(detector.detect_in(signals))["React"]
    assert react.confidence is Confidence.MEDIUM


def test_inline_script_is_medium():
    """Test that a script pattern found only inline yields medium confidence."""
    detector = TechnologyDetector([
        TechPattern("Widget", "library", (Signal(SCRIPT, re.compile(r"widget\.js")),)),
    ])
    html = "<html><body><script>load('/static/widget.js')</script></body></html>"
    (match,) = detector.detect_in(detector.collect_signals(html, set()))
    assert match.confidence is Confidence.MEDIUM


def test_best_confidence_wins_across_signals():
    """Test that a later high signal upgrades an earlier medium one."""
    detector = TechnologyDetector([
        TechPattern("Thing", "library", (
            Signal(ELEMENT, ".thing"),
            Signal(META, "thing-version"),
        )),
    ])
    html = '<html><head><meta name="thing-version" content="1"></head><body><p class="thing"></p></body></html>'
    (match,) = detector.detect_in(detector.collect_signals(html, set()))
    assert match.confidence is Confidence.HIGH


def test_unsupported_selector_is_ignored():
    detector = TechnologyDetector([
        TechPattern("Broken", "library", (Signal(ELEMENT, "div[[["),)),
    ])
    assert detector.detect_in(detector.collect_signals("<div></div>", set())) == []


def test_detection_is_deterministic(fixture_site):
    detector = TechnologyDetector()
    html = fixture_site["https://example.com/"]
    first = detector.detect_in(detector.collect_signals(html, {"jQuery"}))
    second = detector.detect_in(detector.collect_signals(html, {"jQuery"}))
    assert first == second


@pytest.mark.asyncio
async def test_detect_checks_globals_in_page(fixture_site):
    """Test detection through the render surface."""
    surface = FakeSurface(fixture_site, globals_present={"__NEXT_DATA__", "dataLayer"})
    await surface.navigate("https://example.com/blog")

    found = _by_name(await TechnologyDetector().detect(surface))

    assert found["Next.js"].confidence is Confidence.HIGH
    assert found["Google Tag Manager"].confidence is Confidence.HIGH
    assert "jQuery" not in found


def _page(url, *techs):
    return PageRecord(url=url, technologies=list(techs))


def test_aggregate_high_overwrites_earlier_low():
    """Test the merge rule for a later high-confidence observation."""
    pages = [
        _page("https://x.com/a", TechnologyMatch("X", "library", Confidence.LOW)),
        _page("https://x.com/b", TechnologyMatch("X", "library", Confidence.HIGH, "2.0")),
    ]
    merged = aggregate_technologies(pages)
    assert len(merged) == 1
    assert merged[0].confidence is Confidence.HIGH
    assert merged[0].version == "2.0"


def test_aggregate_keeps_first_seen_otherwise():
    pages = [
        _page("https://x.com/a", TechnologyMatch("X", "library", Confidence.MEDIUM, "1.0")),
        _page("https://x.com/b", TechnologyMatch("X", "library", Confidence.MEDIUM, "1.1")),
        _page("https://x.com/c", TechnologyMatch("Y", "cms", Confidence.LOW)),
    ]
    merged = aggregate_technologies(pages)
    assert [(t.name, t.version) for t in merged] == [("X", "1.0"), ("Y", None)]
