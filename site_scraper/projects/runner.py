"""
Project run state machine.

Runs the crawl engine over every seed URL of a project, records status and
progress in the project store and pushes progress events to listeners.
"""

import asyncio
import threading
import time
from typing import Callable, List, Optional

from .store import ProjectStore
from ..crawler.crawler import CrawlOptions, CrawlSession
from ..crawler.renderer import PageRenderer
from ..crawler.report import build_report, save_report
from ..models import PageRecord, ProgressDetails, ProgressEvent, Project, SiteReport, utc_now
from ..utils.log import get_logger
from ..utils.paths import ensure_dir


Listener = Callable[[ProgressEvent], None]


def compute_progress(seeds_done: int, total_seeds: int, pages_done: int, max_pages: int) -> int:
    """
    Overall run progress while a run is in flight, in the range 0-99.

    Each seed owns an equal share of 100; inside the current seed the share
    fills with pages collected against its page limit. Unlimited seeds only
    advance when they finish.
    """
    if total_seeds <= 0:
        return 0
    share = 100 / total_seeds
    value = seeds_done * share
    if max_pages > 0:
        value += (pages_done / max_pages) * share
    return max(0, min(int(value + 0.5), 99))


class ProjectRunner:
    """
    Runs projects and reports their progress.

    Status moves idle -> running -> completed or failed, and a finished
    project can run again. A failing run is recorded on the project and
    never raises out of ``run``.
    """

    def __init__(
        self,
        store: ProjectStore,
        renderer_factory: Callable[[], PageRenderer] = PageRenderer
    ):
        """
        Initialize the project runner.

        Args:
            store: Store holding the projects
            renderer_factory: Creates a fresh renderer for each run
        """
        self.store = store
        self.renderer_factory = renderer_factory
        self.logger = get_logger("runner")
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()

    def add_listener(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    async def run(self, project_id: str) -> Optional[SiteReport]:
        """
        Run a project to completion.

        Args:
            project_id: Project to run

        Returns:
            The run's SiteReport, or None if the run failed

        Raises:
            ProjectNotFoundError: If the project does not exist
            ProjectConflictError: If the project is already running
        """
        project = self.store.begin_run(project_id)
        return await self._execute(project)

    def start(self, project_id: str) -> threading.Thread:
        """
        Move a project to running and execute it on a background thread.

        The state change happens before this returns, so a second call for
        the same project raises ProjectConflictError.
        """
        project = self.store.begin_run(project_id)
        thread = threading.Thread(
            target=asyncio.run,
            args=(self._execute(project),),
            name=f"run-{project_id}",
            daemon=True,
        )
        thread.start()
        return thread

    async def _execute(self, project: Project) -> Optional[SiteReport]:
        project_id = project.id
        self._emit(project_id, 0, "Starting", ProgressDetails(
            status="starting",
            action="start",
            message=f"Crawling {len(project.urls)} URL(s)",
        ))

        start_time = utc_now()
        started = time.monotonic()
        try:
            project_dir = self.store.project_dir(project)
            ensure_dir(project_dir)
            options = CrawlOptions.from_project(project, project_dir)
            pages = await self._crawl(project_id, options)

            report = build_report(
                base_url=options.base_url,
                base_urls=options.urls,
                pages=pages,
                start_time=start_time,
                end_time=utc_now(),
                duration=round(time.monotonic() - started, 3),
            )
            save_report(report, project_dir, project.name)
        except Exception as e:
            message = str(e) or type(e).__name__
            self.logger.error(f"Project run failed: {project.name}: {message}")
            failed = self.store.fail_run(project_id, message)
            self._emit(project_id, failed.progress, f"Failed: {message}", ProgressDetails(
                status="failed",
                action="failed",
                message=message,
            ))
            return None

        self.store.finish_run(project_id, report.to_dict())
        self._emit(project_id, 100, "Completed", ProgressDetails(
            status="completed",
            action="complete",
            message=f"{report.total_pages} pages scraped",
        ))
        self.logger.info(f"Project {project.name} completed: {report.total_pages} pages")
        return report

    async def _crawl(self, project_id: str, options: CrawlOptions) -> List[PageRecord]:
        """Crawl every seed through one surface, sharing visited URLs and pages."""
        renderer = self.renderer_factory()
        await renderer.start()
        try:
            surface = await renderer.open_surface(options.viewport_width, options.viewport_height)
            try:
                session = CrawlSession(options, surface)
                total_seeds = len(options.urls)
                progress = 0

                for index, seed in enumerate(options.urls):

                    def on_page(record: PageRecord, count: int) -> None:
                        nonlocal progress
                        progress = self.store.record_progress(
                            project_id,
                            compute_progress(index, total_seeds, count, options.max_pages),
                        )
                        limit = options.max_pages or "unlimited"
                        self._emit(project_id, progress, f"Scraped: {record.url}", ProgressDetails(
                            status="scraping",
                            url=record.url,
                            action="page_complete",
                            message=f"Page {count} of {limit}",
                        ))

                    def on_step(action: str, url: str, message: str) -> None:
                        status = "downloading_assets" if action == "downloading_assets" else "scraping"
                        self._emit(project_id, progress, f"{message}: {url}", ProgressDetails(
                            status=status,
                            url=url,
                            action=action,
                            message=message,
                        ))

                    await session.crawl_seed(seed, options.max_pages, on_page, on_step)
                    progress = self.store.record_progress(
                        project_id,
                        compute_progress(index + 1, total_seeds, 0, options.max_pages),
                    )
                return session.pages
            finally:
                await surface.close()
        finally:
            await renderer.stop()

    def _emit(
        self,
        project_id: str,
        progress: int,
        status: str,
        details: Optional[ProgressDetails] = None
    ) -> None:
        event = ProgressEvent(project_id=project_id, progress=progress, status=status, details=details)
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                self.logger.warning(f"Progress listener failed: {e}")
