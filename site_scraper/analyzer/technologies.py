"""
Technology detection for rendered pages.

Matches a fixed rule table against script URLs, inline scripts, global
JavaScript symbols, meta tags and DOM selectors.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Set, Tuple, Union

from soupsieve import SelectorSyntaxError

from ..models import Confidence, TechnologyMatch
from ..utils.html import parse_html
from ..utils.log import get_logger


SCRIPT = "script"
GLOBAL = "global"
META = "meta"
ELEMENT = "element"


@dataclass(frozen=True)
class Signal:
    """
    One piece of evidence for a technology.

    ``pattern`` is a compiled regex for script signals and a plain string
    (symbol name, meta name or CSS selector) for the other kinds.
    """
    kind: str
    pattern: Union[str, Pattern]
    version_pattern: Optional[Pattern] = None
    content_pattern: Optional[Pattern] = None


@dataclass(frozen=True)
class TechPattern:
    name: str
    category: str
    signals: Tuple[Signal, ...]


def _re(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


TECH_PATTERNS: Tuple[TechPattern, ...] = (
    # Frameworks
    TechPattern("React", "framework", (
        Signal(GLOBAL, "__REACT_DEVTOOLS_GLOBAL_HOOK__"),
        Signal(SCRIPT, _re(r"react(?:\.min)?\.js")),
        Signal(ELEMENT, "[data-reactroot]"),
    )),
    TechPattern("Vue.js", "framework", (
        Signal(GLOBAL, "Vue"),
        Signal(SCRIPT, _re(r"vue(?:\.min)?\.js"), version_pattern=_re(r"vue@(\d+\.\d+\.\d+)")),
        Signal(ELEMENT, "[data-v-]"),
    )),
    TechPattern("Angular", "framework", (
        Signal(GLOBAL, "ng"),
        Signal(SCRIPT, _re(r"angular(?:\.min)?\.js")),
        Signal(ELEMENT, "[ng-app]"),
        Signal(ELEMENT, "[ng-controller]"),
    )),
    TechPattern("Next.js", "framework", (
        Signal(GLOBAL, "__NEXT_DATA__"),
        Signal(SCRIPT, _re(r"_next/static")),
        Signal(META, "next-head-count"),
    )),
    TechPattern("Nuxt.js", "framework", (
        Signal(GLOBAL, "__NUXT__"),
        Signal(SCRIPT, _re(r"_nuxt/")),
    )),
    TechPattern("Svelte", "framework", (
        Signal(ELEMENT, '[class*="svelte-"]'),
        Signal(SCRIPT, _re(r"svelte")),
    )),

    # Libraries
    TechPattern("jQuery", "library", (
        Signal(GLOBAL, "jQuery"),
        Signal(SCRIPT, _re(r"jquery(?:\.min)?\.js"), version_pattern=_re(r"jquery[.-]?(\d+\.\d+\.\d+)")),
    )),
    TechPattern("Lodash", "library", (
        Signal(GLOBAL, "_"),
        Signal(SCRIPT, _re(r"lodash(?:\.min)?\.js")),
    )),
    TechPattern("Bootstrap", "ui-framework", (
        Signal(SCRIPT, _re(r"bootstrap(?:\.min)?\.js")),
        Signal(ELEMENT, ".container"),
        Signal(ELEMENT, ".row"),
    )),
    TechPattern("Tailwind CSS", "ui-framework", (
        Signal(ELEMENT, '[class*="tw-"]'),
        Signal(ELEMENT, '[class*="flex"]'),
        Signal(ELEMENT, '[class*="grid"]'),
    )),

    # Analytics & tracking
    TechPattern("Google Analytics", "analytics", (
        Signal(GLOBAL, "ga"),
        Signal(GLOBAL, "gtag"),
        Signal(SCRIPT, _re(r"google-analytics\.com/analytics\.js")),
        Signal(SCRIPT, _re(r"googletagmanager\.com/gtag")),
    )),
    TechPattern("Google Tag Manager", "analytics", (
        Signal(GLOBAL, "dataLayer"),
        Signal(SCRIPT, _re(r"googletagmanager\.com/gtm\.js")),
    )),
    TechPattern("Hotjar", "analytics", (
        Signal(GLOBAL, "hj"),
        Signal(SCRIPT, _re(r"static\.hotjar\.com")),
    )),
    TechPattern("Segment", "analytics", (
        Signal(GLOBAL, "analytics"),
        Signal(SCRIPT, _re(r"cdn\.segment\.com")),
    )),

    # CMS
    TechPattern("WordPress", "cms", (
        Signal(META, "generator", version_pattern=_re(r"WordPress\s+(\d+\.\d+\.?\d*)"),
               content_pattern=_re(r"wordpress")),
        Signal(SCRIPT, _re(r"wp-content/")),
        Signal(SCRIPT, _re(r"wp-includes/")),
    )),
    TechPattern("Drupal", "cms", (
        Signal(GLOBAL, "Drupal"),
        Signal(SCRIPT, _re(r"/sites/all/")),
    )),
    TechPattern("Shopify", "ecommerce", (
        Signal(GLOBAL, "Shopify"),
        Signal(SCRIPT, _re(r"cdn\.shopify\.com")),
    )),

    # Build tools
    TechPattern("Webpack", "build-tool", (
        Signal(GLOBAL, "webpackJsonp"),
        Signal(SCRIPT, _re(r"webpack")),
    )),
    TechPattern("Vite", "build-tool", (
        Signal(SCRIPT, _re(r"@vite/client")),
        Signal(SCRIPT, _re(r"\.vite/")),
    )),

    # State management
    TechPattern("Redux", "state-management", (
        Signal(GLOBAL, "__REDUX_DEVTOOLS_EXTENSION__"),
    )),

    # Other
    TechPattern("TypeScript", "language", (
        Signal(SCRIPT, _re(r"\.tsx?$")),
    )),
    TechPattern("Font Awesome", "icons", (
        Signal(SCRIPT, _re(r"fontawesome")),
        Signal(ELEMENT, ".fa"),
        Signal(ELEMENT, '[class*="fa-"]'),
    )),
)


# Returns the subset of the given names defined on window
GLOBALS_CHECK_JS = """
(names) => names.filter((name) => typeof window[name] !== 'undefined')
"""


@dataclass
class PageSignals:
    """Everything the rule table is evaluated against for one page."""
    script_sources: List[str]
    inline_scripts: List[str]
    meta_tags: List[Tuple[str, str]]  # (name, content)
    globals_present: Set[str]
    soup: object


class TechnologyDetector:
    """
    Detects front-end technologies on a loaded page.

    Runs once per page and returns page-local matches only; aggregating
    matches across a run is the crawler's job.
    """

    def __init__(self, patterns: Sequence[TechPattern] = TECH_PATTERNS):
        self.patterns = tuple(patterns)
        self.logger = get_logger("technologies")
        self._global_names = sorted({
            signal.pattern
            for tech in self.patterns
            for signal in tech.signals
            if signal.kind == GLOBAL
        })

    async def detect(self, surface) -> List[TechnologyMatch]:
        """
        Detect technologies on a loaded page.

        Args:
            surface: Render surface holding the loaded page

        Returns:
            Matches in rule-table order
        """
        html = await surface.content()
        globals_present = await self._check_globals(surface)
        return self.detect_in(self.collect_signals(html, globals_present))

    async def _check_globals(self, surface) -> Set[str]:
        if not self._global_names:
            return set()
        present = await surface.evaluate(GLOBALS_CHECK_JS, self._global_names)
        return set(present or [])

    def collect_signals(self, html: str, globals_present: Set[str]) -> PageSignals:
        soup = parse_html(html)
        script_sources = [s.get('src', '') for s in soup.find_all('script', src=True)]
        inline_scripts = [
            s.get_text() for s in soup.find_all('script') if not s.has_attr('src')
        ]
        meta_tags = [
            (m.get('name', ''), m.get('content', ''))
            for m in soup.find_all('meta')
        ]
        return PageSignals(
            script_sources=script_sources,
            inline_scripts=inline_scripts,
            meta_tags=meta_tags,
            globals_present=set(globals_present),
            soup=soup,
        )

    def detect_in(self, page: PageSignals) -> List[TechnologyMatch]:
        """Evaluate the rule table against collected page signals."""
        detected = []
        for tech in self.patterns:
            match = self._evaluate(tech, page)
            if match is not None:
                detected.append(match)

        if detected:
            self.logger.debug(f"Detected: {', '.join(t.name for t in detected)}")
        return detected

    def _evaluate(self, tech: TechPattern, page: PageSignals) -> Optional[TechnologyMatch]:
        best: Optional[Confidence] = None
        version: Optional[str] = None

        for signal in tech.signals:
            confidence, found_version = self._check_signal(signal, page, best)
            if confidence is not None and (best is None or confidence.rank > best.rank):
                best = confidence
            if found_version and version is None:
                version = found_version
            if best is Confidence.HIGH:
                break

        if best is None:
            return None
        return TechnologyMatch(
            name=tech.name,
            category=tech.category,
            confidence=best,
            version=version,
        )

    def _check_signal(
        self,
        signal: Signal,
        page: PageSignals,
        current: Optional[Confidence]
    ) -> Tuple[Optional[Confidence], Optional[str]]:
        if signal.kind == SCRIPT:
            for src in page.script_sources:
                if signal.pattern.search(src):
                    return Confidence.HIGH, _extract_version(signal.version_pattern, src)
            for script in page.inline_scripts:
                if signal.pattern.search(script):
                    return Confidence.MEDIUM, None
            return None, None

        if signal.kind == GLOBAL:
            if signal.pattern in page.globals_present:
                return Confidence.HIGH, None
            return None, None

        if signal.kind == META:
            wanted = signal.pattern.lower()
            for name, content in page.meta_tags:
                if name.lower() != wanted:
                    continue
                if signal.content_pattern and not signal.content_pattern.search(content):
                    continue
                return Confidence.HIGH, _extract_version(signal.version_pattern, content)
            return None, None

        if signal.kind == ELEMENT:
            if self._selector_exists(page.soup, signal.pattern):
                # An element hit alone is medium; it never lowers a stronger match
                if current is None or current is Confidence.LOW:
                    return Confidence.MEDIUM, None
                return current, None
            return None, None

        return None, None

    def _selector_exists(self, soup, selector: str) -> bool:
        try:
            return soup.select_one(selector) is not None
        except (SelectorSyntaxError, ValueError, NotImplementedError):
            self.logger.debug(f"Unsupported selector: {selector}")
            return False


def _extract_version(pattern: Optional[Pattern], source: str) -> Optional[str]:
    if pattern is None:
        return None
    match = pattern.search(source)
    return match.group(1) if match else None

