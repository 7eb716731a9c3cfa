"""
Analyzer module for front-end technology detection.

Contains the technology rule table and the detector that evaluates it
against a rendered page.
"""

from .technologies import (
    TECH_PATTERNS,
    TechPattern,
    Signal,
    TechnologyDetector,
)

__all__ = [
    "TECH_PATTERNS",
    "TechPattern",
    "Signal",
    "TechnologyDetector",
]
