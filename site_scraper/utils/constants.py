"""
Shared constants for the site scraper.

Contains common configuration values used across multiple modules.
"""

# User agent announced by the browser renderer and the asset downloader
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; SiteScraperBot/1.0; "
    "+https://github.com/MacphersonDesigns/site-scraper)"
)

# Page navigation timeout in milliseconds (for Playwright)
DEFAULT_PAGE_TIMEOUT = 30000

# Wait condition passed to Playwright's goto()
DEFAULT_WAIT_UNTIL = "networkidle"

# Settle delay after navigation, for late async rendering (ms)
SETTLE_DELAY_MS = 500

# Settle delay after animations were neutralized (ms)
ANIMATION_SETTLE_MS = 100

# Maximum pages to crawl by default (0 means unlimited)
DEFAULT_MAX_PAGES = 50

# Delay between page requests in milliseconds
DEFAULT_CRAWL_DELAY = 1000

# Default viewport
DEFAULT_VIEWPORT_WIDTH = 1920
DEFAULT_VIEWPORT_HEIGHT = 1080

# Screenshot quality (only used for JPEG captures)
DEFAULT_SCREENSHOT_QUALITY = 90

# Asset download limits
DEFAULT_ASSET_TIMEOUT = 5000
DEFAULT_MAX_ASSET_SIZE = 10 * 1024 * 1024
DEFAULT_CONCURRENCY = 5
DEFAULT_MAX_REDIRECTS = 1

# Default output locations
DEFAULT_SCREENSHOT_DIR = "./screenshots"
DEFAULT_OUTPUT_DIR = "./output"
DEFAULT_DATA_DIR = "./scraped-data"
DEFAULT_CLONE_DIR = "./cloned-sites"

# Web UI port
DEFAULT_PORT = 3000

# Paths ending with these extensions are never queued as pages
SKIP_EXTENSIONS = (
    ".pdf", ".zip", ".jpg", ".jpeg", ".png", ".gif", ".svg",
    ".css", ".js", ".mp4", ".webm", ".mp3",
)
