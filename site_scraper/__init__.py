"""
Site Scraper - crawl a website, screenshot every page and detect its stack.

This package follows internal links breadth-first, captures a screenshot and
structured content for each page, detects front-end technologies, and can
download page images or clone a single page with its assets.
"""

__version__ = "1.0.0"
__author__ = "Site Scraper Team"
