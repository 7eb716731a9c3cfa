"""
Path and URL utilities for the site scraper.

Provides URL normalization, crawl filtering, filename generation,
and directory management.
"""

import os
import re
from typing import Iterable, Optional, Set
from urllib.parse import urlparse, urljoin

from .constants import SKIP_EXTENSIONS


_DEFAULT_PORTS = {"http": 80, "https": 443}

# Characters that are invalid in filenames on common filesystems
_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

MAX_FILENAME_LENGTH = 200


def normalize_url(url: str) -> str:
    """
    Normalize a URL for visited-set membership.

    The fragment is dropped, the path and query string are kept, and
    trailing slashes are collapsed except for the bare host root. Two URLs
    with the same normalized form are the same page.

    Args:
        url: Absolute URL to normalize

    Returns:
        Normalized URL string (the input unchanged if it cannot be parsed)
    """
    try:
        parsed = urlparse(url.strip())
        port = parsed.port
    except (ValueError, AttributeError):
        return url

    if not parsed.scheme or not parsed.hostname:
        return url

    scheme = parsed.scheme.lower()
    host = parsed.hostname.lower()
    if port and port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{port}"

    path = parsed.path.rstrip("/") or "/"
    normalized = f"{scheme}://{host}{path}"
    if parsed.query:
        normalized += f"?{parsed.query}"
    return normalized


def get_hostname(url: str) -> str:
    """
    Extract the lowercase hostname from a URL.

    Args:
        url: URL to extract the hostname from

    Returns:
        Hostname string (e.g., 'example.com'), empty if there is none
    """
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_internal_url(url: str, base_hostname: str) -> bool:
    """Check whether an absolute http(s) URL lives on the given hostname."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    return (parsed.hostname or "").lower() == base_hostname.lower()


def has_skipped_extension(url: str) -> bool:
    """Check whether a URL points at a binary or asset file rather than a page."""
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return True
    return path.endswith(SKIP_EXTENSIONS)


def should_crawl(url: str, base_hostname: str, visited: Optional[Set[str]] = None) -> bool:
    """
    Decide whether a discovered link belongs in the crawl frontier.

    Args:
        url: Absolute URL of the link
        base_hostname: Hostname that defines "internal" for the run
        visited: Normalized URLs already visited

    Returns:
        True if the URL is internal, not an asset and not yet visited
    """
    if not is_internal_url(url, base_hostname):
        return False
    if has_skipped_extension(url):
        return False
    if visited is not None and normalize_url(url) in visited:
        return False
    return True


def resolve_url(url: str, base_url: Optional[str] = None) -> str:
    """
    Resolve relative and protocol-relative URLs against a base URL.

    Args:
        url: URL as found in the document
        base_url: URL of the page the reference was found on

    Returns:
        Absolute URL (or the input if no base is available)
    """
    url = url.strip()
    if url.startswith("data:"):
        return url
    if url.startswith("//"):
        scheme = urlparse(base_url).scheme if base_url else ""
        return f"{scheme or 'https'}:{url}"
    if base_url and not url.startswith(("http://", "https://")):
        return urljoin(base_url, url)
    return url


def page_folder_name(url: str) -> str:
    """
    Derive a per-page folder name from the URL path.

    ``https://x.com/docs/intro/`` becomes ``docs_intro``; the root becomes
    ``index``.

    Args:
        url: Page URL

    Returns:
        Filesystem-safe folder name
    """
    try:
        path = urlparse(url).path
    except ValueError:
        return "page"
    name = path.strip("/").replace("/", "_")
    name = re.sub(r"[^a-zA-Z0-9_-]", "", name)
    return name or "index"


def sanitize_filename(filename: str) -> str:
    """
    Turn a URL path into a safe filename.

    Keeps the last path segment, drops query string and fragment, replaces
    invalid characters and limits the length while preserving the extension.

    Args:
        filename: URL path or filename

    Returns:
        Safe filename ('unnamed' when nothing usable remains)
    """
    sanitized = filename.split("/")[-1] or "unnamed"
    sanitized = sanitized.split("?")[0].split("#")[0]
    sanitized = _INVALID_FILENAME_CHARS.sub("_", sanitized)

    if len(sanitized) > MAX_FILENAME_LENGTH:
        _, ext = os.path.splitext(sanitized)
        sanitized = sanitized[:MAX_FILENAME_LENGTH - len(ext)] + ext

    return sanitized or "unnamed"


def unique_filename(directory: str, filename: str, reserved: Iterable[str] = ()) -> str:
    """
    Get a filename that does not collide with existing or reserved names.

    ``logo.png`` becomes ``logo_1.png``, then ``logo_2.png`` and so on.

    Args:
        directory: Destination directory
        filename: Desired filename
        reserved: Names already claimed but not yet written

    Returns:
        A filename free in the directory
    """
    reserved = set(reserved)
    base, ext = os.path.splitext(filename)
    candidate = filename
    counter = 1
    while candidate in reserved or os.path.exists(os.path.join(directory, candidate)):
        candidate = f"{base}_{counter}{ext}"
        counter += 1
    return candidate


def sanitize_name(name: str) -> str:
    """Convert a project name into a folder name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:50] or "unnamed"


def site_folder_name(url: str) -> str:
    """Convert a URL's hostname into a folder name for cloned sites."""
    hostname = get_hostname(url)
    if not hostname:
        return "unknown-site"
    return re.sub(r"[^a-zA-Z0-9.-]", "_", hostname)


def format_bytes(size: int) -> str:
    """
    Format a byte count as a human-readable string.

    Args:
        size: Number of bytes

    Returns:
        String such as '512 B', '1.5 KB' or '2 MB'
    """
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    value = round(value, 1)
    if value == int(value):
        value = int(value)
    return f"{value} {units[index]}"


def ensure_dir(path: str) -> None:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists
    """
    os.makedirs(path, exist_ok=True)


def get_relative_path(from_path: str, to_path: str) -> str:
    """
    Calculate the relative path from one file to another.

    Args:
        from_path: Source file path
        to_path: Target file path

    Returns:
        Relative path string
    """
    from_dir = os.path.dirname(from_path)
    rel_path = os.path.relpath(to_path, from_dir)
    # Use forward slashes for URLs
    return rel_path.replace('\\', '/')


def validate_url(url: str) -> str:
    """
    Check that a seed URL is an absolute http(s) URL.

    Args:
        url: URL supplied by the user

    Returns:
        The stripped URL

    Raises:
        ValueError: If the URL is empty or not an absolute http(s) URL
    """
    if not isinstance(url, str) or not url.strip():
        raise ValueError("URL is required")
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        raise ValueError(f"Invalid URL: {url}")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return url
