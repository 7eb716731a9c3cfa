"""
Project module for persisted, re-runnable crawl configurations.

Contains the project store and the run state machine.
"""

from .store import ProjectStore, ProjectNotFoundError, ProjectConflictError
from .runner import ProjectRunner

__all__ = [
    "ProjectStore",
    "ProjectNotFoundError",
    "ProjectConflictError",
    "ProjectRunner",
]
