"""
Page extractor for turning a rendered page into structured data.

Uses BeautifulSoup to parse the DOM that the browser rendered, so content
injected by JavaScript is included.
"""

import copy
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..models import Heading, ImageInfo, LinkInfo, StructuralElement
from ..utils.html import parse_html
from ..utils.log import get_logger
from ..utils.paths import get_hostname, is_internal_url


# Landmark tags reported in document order per tag
STRUCTURAL_TAGS = ('header', 'nav', 'main', 'article', 'section', 'aside', 'footer', 'form')

# Text captured per structural element
STRUCTURE_TEXT_LIMIT = 200

# Link schemes that never point at a crawlable page
NON_NAVIGABLE_SCHEMES = ('javascript:', 'mailto:', 'tel:', 'data:')

_WHITESPACE = re.compile(r'\s+')


@dataclass
class PageContent:
    """Content extracted from one rendered page."""

    title: str = ""
    meta_description: Optional[str] = None
    text_content: str = ""
    headings: List[Heading] = field(default_factory=list)
    links: List[LinkInfo] = field(default_factory=list)
    images: List[ImageInfo] = field(default_factory=list)
    structure: List[StructuralElement] = field(default_factory=list)


class PageExtractor:
    """
    Extracts links, images, headings, landmarks, text and metadata.

    Links are classified as internal when they share the hostname of the
    base URL given at construction (the run's first seed).
    """

    def __init__(self, base_url: str):
        """
        Initialize the page extractor.

        Args:
            base_url: URL whose hostname defines internal links
        """
        self.base_url = base_url
        self.base_hostname = get_hostname(base_url)
        self.logger = get_logger("extractor")

    async def extract(self, surface, page_url: str) -> PageContent:
        """
        Extract structured content from a loaded page.

        Args:
            surface: Render surface holding the loaded page
            page_url: URL the page was loaded from

        Returns:
            PageContent for the page
        """
        html = await surface.content()
        return self.extract_html(html, page_url)

    def extract_html(self, html: str, page_url: str) -> PageContent:
        """Extract structured content from rendered HTML."""
        soup = parse_html(html)

        content = PageContent(
            title=self._extract_title(soup),
            meta_description=self._extract_meta_description(soup),
            text_content=self._extract_text(soup),
            headings=self._extract_headings(soup),
            links=self._extract_links(soup, page_url),
            images=self._extract_images(soup, page_url),
            structure=self._extract_structure(soup),
        )

        self.logger.debug(
            f"Extracted from {page_url}: "
            f"{len(content.links)} links, {len(content.images)} images, "
            f"{len(content.headings)} headings"
        )
        return content

    def _extract_title(self, soup: BeautifulSoup) -> str:
        if soup.title is None:
            return ""
        return _WHITESPACE.sub(' ', soup.title.get_text()).strip()

    def _extract_meta_description(self, soup: BeautifulSoup) -> Optional[str]:
        meta = soup.find('meta', attrs={'name': 'description'})
        if meta is None:
            return None
        return meta.get('content') or None

    def _extract_text(self, soup: BeautifulSoup) -> str:
        """Visible body text with whitespace collapsed."""
        body = soup.body
        if body is None:
            return ""
        body = copy.copy(body)
        for element in body.find_all(['script', 'style', 'noscript']):
            element.decompose()
        return _WHITESPACE.sub(' ', body.get_text(' ')).strip()

    def _extract_headings(self, soup: BeautifulSoup) -> List[Heading]:
        headings = []
        for level in range(1, 7):
            for element in soup.find_all(f'h{level}'):
                headings.append(Heading(level=level, text=element.get_text().strip()))
        return headings

    def _extract_links(self, soup: BeautifulSoup, page_url: str) -> List[LinkInfo]:
        """Extract anchor links, resolving hrefs against the page URL."""
        links = []
        for anchor in soup.find_all('a', href=True):
            href = anchor.get('href', '').strip()
            text = anchor.get_text().strip()

            if href.lower().startswith(NON_NAVIGABLE_SCHEMES):
                links.append(LinkInfo(text=text, href=href, is_internal=False))
                continue

            try:
                resolved = urljoin(page_url, href)
            except ValueError:
                links.append(LinkInfo(text=text, href=href, is_internal=False))
                continue

            links.append(LinkInfo(
                text=text,
                href=resolved,
                is_internal=is_internal_url(resolved, self.base_hostname),
            ))
        return links

    def _extract_images(self, soup: BeautifulSoup, page_url: str) -> List[ImageInfo]:
        images = []
        for img in soup.find_all('img'):
            src = img.get('src', '').strip()
            if src:
                src = src if src.startswith('data:') else urljoin(page_url, src)
            else:
                src = img.get('data-src', '').strip()

            images.append(ImageInfo(
                src=src,
                alt=img.get('alt', ''),
                width=_int_attribute(img, 'width'),
                height=_int_attribute(img, 'height'),
            ))
        return images

    def _extract_structure(self, soup: BeautifulSoup) -> List[StructuralElement]:
        elements = []
        for tag in STRUCTURAL_TAGS:
            for element in soup.find_all(tag):
                text = None
                if tag != 'form':
                    text = element.get_text()[:STRUCTURE_TEXT_LIMIT].strip()
                elements.append(StructuralElement(
                    tag=tag,
                    id=element.get('id') or None,
                    classes=list(element.get('class', [])),
                    text=text,
                    child_count=_child_count(element),
                ))

        # Divs with significant IDs or roles
        for div in soup.find_all('div'):
            if div.get('id') or div.get('role'):
                elements.append(StructuralElement(
                    tag='div',
                    id=div.get('id') or None,
                    classes=list(div.get('class', [])),
                    child_count=_child_count(div),
                ))
        return elements


def _child_count(element: Tag) -> int:
    return len(element.find_all(True, recursive=False))


def _int_attribute(element: Tag, name: str) -> Optional[int]:
    value = element.get(name)
    if not value:
        return None
    match = re.match(r'\s*(\d+)', str(value))
    if not match or int(match.group(1)) == 0:
        return None
    return int(match.group(1))
