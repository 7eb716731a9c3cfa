"""
Data models shared across the crawler, detector and project runner.

Every model serializes to the camelCase JSON layout used by ``report.json``,
``data.json`` and ``projects.json``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> str:
    """Current time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class Confidence(str, Enum):
    """Detection confidence, ordered high > medium > low."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


class ProjectStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class LinkInfo:
    text: str
    href: str
    is_internal: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "href": self.href, "isInternal": self.is_internal}


@dataclass(frozen=True)
class ImageInfo:
    src: str
    alt: str = ""
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "src": self.src,
            "alt": self.alt,
            "width": self.width,
            "height": self.height,
        })


@dataclass(frozen=True)
class Heading:
    level: int
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "text": self.text}


@dataclass(frozen=True)
class StructuralElement:
    """A landmark element (header, nav, main, ...) found on a page."""

    tag: str
    classes: List[str] = field(default_factory=list)
    child_count: int = 0
    id: Optional[str] = None
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "tag": self.tag,
            "id": self.id,
            "classes": list(self.classes),
            "text": self.text,
            "childCount": self.child_count,
        })


@dataclass(frozen=True)
class TechnologyMatch:
    """A technology detected on a page."""

    name: str
    category: str
    confidence: Confidence
    version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "name": self.name,
            "version": self.version,
            "category": self.category,
            "confidence": self.confidence.value,
        })


@dataclass(frozen=True)
class PageRecord:
    """
    Everything captured for one crawled page.

    A record with ``status_code == 0`` and empty fields marks a page whose
    processing failed.
    """

    url: str
    title: str = ""
    meta_description: Optional[str] = None
    text_content: str = ""
    headings: List[Heading] = field(default_factory=list)
    links: List[LinkInfo] = field(default_factory=list)
    images: List[ImageInfo] = field(default_factory=list)
    structure: List[StructuralElement] = field(default_factory=list)
    technologies: List[TechnologyMatch] = field(default_factory=list)
    screenshot_path: Optional[str] = None
    status_code: int = 200
    load_time: int = 0
    scraped_at: str = field(default_factory=utc_now)

    @property
    def internal_links(self) -> List[str]:
        return [link.href for link in self.links if link.is_internal]

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "url": self.url,
            "title": self.title,
            "metaDescription": self.meta_description,
            "textContent": self.text_content,
            "headings": [h.to_dict() for h in self.headings],
            "links": [link.to_dict() for link in self.links],
            "images": [img.to_dict() for img in self.images],
            "structure": [el.to_dict() for el in self.structure],
            "screenshotPath": self.screenshot_path,
            "technologies": [t.to_dict() for t in self.technologies],
            "statusCode": self.status_code,
            "loadTime": self.load_time,
            "scrapedAt": self.scraped_at,
        })


@dataclass
class AssetDownloadResult:
    """Outcome of one attempted asset download."""

    url: str
    success: bool
    local_path: Optional[str] = None
    error: Optional[str] = None
    size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "url": self.url,
            "localPath": self.local_path,
            "success": self.success,
            "error": self.error,
            "size": self.size,
        })


@dataclass(frozen=True)
class SiteStructureEntry:
    url: str
    title: str
    children: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "title": self.title, "children": list(self.children)}


@dataclass(frozen=True)
class SiteReport:
    """Final artifact of a crawl run."""

    base_url: str
    total_pages: int
    pages: List[PageRecord]
    technologies: List[TechnologyMatch]
    site_structure: List[SiteStructureEntry]
    start_time: str
    end_time: str
    duration: float
    base_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseUrl": self.base_url,
            "baseUrls": list(self.base_urls or [self.base_url]),
            "totalPages": self.total_pages,
            "pages": [page.to_dict() for page in self.pages],
            "technologies": [t.to_dict() for t in self.technologies],
            "siteStructure": [entry.to_dict() for entry in self.site_structure],
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
        }


@dataclass
class Project:
    """
    A named, persisted crawl configuration plus its mutable run state.

    ``last_report`` holds the serialized form of the last ``SiteReport``.
    """

    id: str
    name: str
    urls: List[str]
    created_at: str
    updated_at: str
    max_pages: int = 50
    delay: int = 1000
    full_page_screenshots: bool = True
    viewport_width: int = 1920
    viewport_height: int = 1080
    disable_animations: bool = True
    download_assets: bool = False
    download_images: bool = True
    asset_timeout: int = 5000
    max_asset_size: int = 10 * 1024 * 1024
    schedule: Optional[str] = None
    status: ProjectStatus = ProjectStatus.IDLE
    progress: int = 0
    error: Optional[str] = None
    last_run: Optional[str] = None
    last_report: Optional[Dict[str, Any]] = None

    # Attribute name -> JSON key
    FIELD_KEYS = {
        "id": "id",
        "name": "name",
        "urls": "urls",
        "max_pages": "maxPages",
        "delay": "delay",
        "full_page_screenshots": "fullPageScreenshots",
        "viewport_width": "viewportWidth",
        "viewport_height": "viewportHeight",
        "disable_animations": "disableAnimations",
        "download_assets": "downloadAssets",
        "download_images": "downloadImages",
        "asset_timeout": "assetTimeout",
        "max_asset_size": "maxAssetSize",
        "schedule": "schedule",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
        "status": "status",
        "progress": "progress",
        "error": "error",
        "last_run": "lastRun",
        "last_report": "lastReport",
    }

    # Fields a user may change through an update
    CONFIG_FIELDS = (
        "name", "urls", "max_pages", "delay", "full_page_screenshots",
        "viewport_width", "viewport_height", "disable_animations",
        "download_assets", "download_images", "asset_timeout",
        "max_asset_size", "schedule",
    )

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for attr, key in self.FIELD_KEYS.items():
            value = getattr(self, attr)
            if isinstance(value, Enum):
                value = value.value
            data[key] = value
        return _drop_none(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        kwargs = {}
        for attr, key in cls.FIELD_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
        if "status" in kwargs:
            kwargs["status"] = ProjectStatus(kwargs["status"])
        return cls(**kwargs)


@dataclass(frozen=True)
class ProgressDetails:
    """Structured detail attached to a progress event."""

    status: str
    url: Optional[str] = None
    action: Optional[str] = None
    message: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "status": self.status,
            "url": self.url,
            "action": self.action,
            "details": self.message,
            "timestamp": self.timestamp,
        })


@dataclass(frozen=True)
class ProgressEvent:
    """A progress notification pushed to registered listeners."""

    project_id: str
    progress: int
    status: str
    details: Optional[ProgressDetails] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "projectId": self.project_id,
            "progress": self.progress,
            "status": self.status,
        }
        if self.details is not None:
            data["details"] = self.details.to_dict()
        return data


@dataclass(frozen=True)
class ClonedAsset:
    original_url: str
    local_path: str
    type: str  # html, css, js or image
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalUrl": self.original_url,
            "localPath": self.local_path,
            "type": self.type,
            "size": self.size,
        }


@dataclass
class CloneResult:
    """Result of a site cloning operation."""

    url: str
    output_dir: str
    html_path: str
    assets: List[ClonedAsset]
    start_time: str
    end_time: str
    duration: float
    errors: List[str] = field(default_factory=list)

    @property
    def total_assets(self) -> int:
        return len(self.assets)

    @property
    def total_size(self) -> int:
        return sum(asset.size for asset in self.assets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "outputDir": self.output_dir,
            "htmlPath": self.html_path,
            "assets": [asset.to_dict() for asset in self.assets],
            "totalAssets": self.total_assets,
            "totalSize": self.total_size,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "errors": list(self.errors),
        }
