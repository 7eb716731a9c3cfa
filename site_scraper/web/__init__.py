"""
Web module for the site scraper.

Provides a Flask-based API for managing projects and following their runs.
"""

from .app import create_app, run_app

__all__ = ["create_app", "run_app"]
