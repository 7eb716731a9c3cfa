"""
Project store backed by ``projects.json``.

Keeps every project in memory and rewrites the whole file after each
mutation, so readers always see a recent snapshot of run state.
"""

import json
import os
import random
import shutil
import string
import threading
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from ..models import Project, ProjectStatus, utc_now
from ..utils.constants import DEFAULT_DATA_DIR
from ..utils.log import get_logger
from ..utils.paths import ensure_dir, sanitize_name, validate_url


PROJECTS_FILE = "projects.json"


class ProjectNotFoundError(LookupError):
    """No project with the requested id exists."""


class ProjectConflictError(RuntimeError):
    """The project is running and cannot be run, edited or deleted."""


def generate_project_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"proj_{int(time.time() * 1000)}_{suffix}"


class ProjectStore:
    """
    In-memory project map mirrored to ``<data_dir>/projects.json``.

    All mutations go through this class and are flushed immediately under a
    lock. Methods return copies, so callers never mutate stored state.
    """

    def __init__(self, data_dir: str = DEFAULT_DATA_DIR):
        """
        Initialize the project store.

        Args:
            data_dir: Directory holding projects.json and project folders
        """
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, PROJECTS_FILE)
        self.logger = get_logger("projects")
        self._projects: Dict[str, Project] = {}
        self._lock = threading.RLock()

    def load(self) -> None:
        """
        Load projects from disk.

        Projects persisted as running belong to a process that no longer
        exists; they come back as idle with progress 0.
        """
        with self._lock:
            ensure_dir(self.data_dir)
            self._projects = {}
            if not os.path.exists(self.path):
                return

            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                projects = {pid: Project.from_dict(raw) for pid, raw in data.items()}
            except (OSError, ValueError, TypeError, AttributeError) as e:
                self.logger.warning(f"Could not read {self.path}, starting empty: {e}")
                return

            for project in projects.values():
                if project.status is ProjectStatus.RUNNING:
                    self.logger.info(f"Resetting interrupted project: {project.name}")
                    project.status = ProjectStatus.IDLE
                    project.progress = 0
            self._projects = projects
            self.save()

    def save(self) -> None:
        """Rewrite projects.json with the current state."""
        with self._lock:
            ensure_dir(self.data_dir)
            data = {pid: project.to_dict() for pid, project in self._projects.items()}
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)

    def create(self, name: str, urls: List[str], **options: Any) -> Project:
        """
        Create and persist a new project.

        Args:
            name: Display name (also names the project folder)
            urls: Seed URLs
            **options: Any configurable Project field

        Returns:
            The new project

        Raises:
            ValueError: If the name, URLs or an option is invalid
        """
        now = utc_now()
        changes = self._validate(dict(options, name=name, urls=urls))
        project = Project(id=generate_project_id(), created_at=now, updated_at=now, **changes)

        with self._lock:
            self._projects[project.id] = project
            self.save()
        ensure_dir(self.project_dir(project))
        self.logger.info(f"Created project {project.name} ({project.id})")
        return replace(project)

    def get(self, project_id: str) -> Project:
        with self._lock:
            return replace(self._get(project_id))

    def all(self) -> List[Project]:
        with self._lock:
            return [replace(p) for p in self._projects.values()]

    def update(self, project_id: str, **changes: Any) -> Project:
        """
        Apply configuration changes to an idle, completed or failed project.

        Raises:
            ProjectNotFoundError: If the project does not exist
            ProjectConflictError: If the project is running
            ValueError: If a change is invalid
        """
        changes = self._validate(changes, partial=True)
        with self._lock:
            project = self._get(project_id)
            if project.status is ProjectStatus.RUNNING:
                raise ProjectConflictError(f"Project {project_id} is running")
            for attr, value in changes.items():
                setattr(project, attr, value)
            project.updated_at = utc_now()
            self.save()
            return replace(project)

    def delete(self, project_id: str) -> None:
        """
        Delete a project and its output folder.

        The folder is kept while another project with the same folder name
        exists.

        Raises:
            ProjectNotFoundError: If the project does not exist
            ProjectConflictError: If the project is running
        """
        with self._lock:
            project = self._get(project_id)
            if project.status is ProjectStatus.RUNNING:
                raise ProjectConflictError(f"Project {project_id} is running")
            project_dir = self.project_dir(project)
            shared = any(
                self.project_dir(other) == project_dir
                for pid, other in self._projects.items() if pid != project_id
            )
            if shared:
                self.logger.info(f"Keeping {project_dir}, still used by another project")
            elif os.path.isdir(project_dir):
                shutil.rmtree(project_dir, ignore_errors=True)
            del self._projects[project_id]
            self.save()
        self.logger.info(f"Deleted project {project.name} ({project_id})")

    def project_dir(self, project: Project) -> str:
        return os.path.join(self.data_dir, sanitize_name(project.name))

    # Run state transitions

    def begin_run(self, project_id: str) -> Project:
        """
        Move a project to running.

        Raises:
            ProjectNotFoundError: If the project does not exist
            ProjectConflictError: If the project is already running
        """
        with self._lock:
            project = self._get(project_id)
            if project.status is ProjectStatus.RUNNING:
                raise ProjectConflictError(f"Project {project_id} is already running")
            project.status = ProjectStatus.RUNNING
            project.progress = 0
            project.error = None
            project.last_run = utc_now()
            self.save()
            return replace(project)

    def record_progress(self, project_id: str, progress: int) -> int:
        """Store mid-run progress, clamped to 0-99. Returns the stored value."""
        progress = max(0, min(int(progress), 99))
        with self._lock:
            project = self._get(project_id)
            project.progress = progress
            self.save()
        return progress

    def finish_run(self, project_id: str, report: Optional[Dict[str, Any]]) -> Project:
        with self._lock:
            project = self._get(project_id)
            project.status = ProjectStatus.COMPLETED
            project.progress = 100
            project.last_run = utc_now()
            project.last_report = report
            self.save()
            return replace(project)

    def fail_run(self, project_id: str, message: str) -> Project:
        with self._lock:
            project = self._get(project_id)
            project.status = ProjectStatus.FAILED
            project.error = message
            self.save()
            return replace(project)

    def _get(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return project

    def _validate(self, changes: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        unknown = set(changes) - set(Project.CONFIG_FIELDS)
        if unknown:
            raise ValueError(f"Unknown project fields: {', '.join(sorted(unknown))}")

        if "name" in changes or not partial:
            name = changes.get("name")
            if not isinstance(name, str) or not name.strip():
                raise ValueError("Project name is required")
            changes["name"] = name.strip()

        if "urls" in changes or not partial:
            urls = changes.get("urls")
            if isinstance(urls, str):
                urls = [urls]
            if not urls:
                raise ValueError("At least one URL is required")
            changes["urls"] = [validate_url(url) for url in urls]

        for attr in ("max_pages", "delay", "asset_timeout", "max_asset_size"):
            if attr in changes:
                value = changes[attr]
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValueError(f"{attr} must be a non-negative integer")

        for attr in ("viewport_width", "viewport_height"):
            if attr in changes:
                value = changes[attr]
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    raise ValueError(f"{attr} must be a positive integer")
        return changes
