"""Tests for the project store and run state machine."""

import asyncio
import json
import os
import threading

import pytest

from site_scraper.models import ProjectStatus
from site_scraper.projects import (
    ProjectConflictError,
    ProjectNotFoundError,
    ProjectRunner,
    ProjectStore,
)
from site_scraper.projects.runner import compute_progress
from tests.conftest import FakeRenderer, FakeSurface


@pytest.fixture
def store(data_dir):
    store = ProjectStore(data_dir)
    store.load()
    return store


@pytest.fixture
def project(store):
    return store.create("Fixture Site", ["https://example.com/"], max_pages=10, delay=0)


def read_projects_file(data_dir):
    with open(os.path.join(data_dir, "projects.json"), encoding="utf-8") as f:
        return json.load(f)


def test_create_persists_project(store, data_dir, project):
    """Test that creation writes projects.json and the project folder."""
    saved = read_projects_file(data_dir)[project.id]

    assert project.id.startswith("proj_")
    assert saved["name"] == "Fixture Site"
    assert saved["urls"] == ["https://example.com/"]
    assert saved["maxPages"] == 10
    assert saved["status"] == "idle"
    assert saved["progress"] == 0
    assert saved["fullPageScreenshots"] is True
    assert os.path.isdir(os.path.join(data_dir, "fixture-site"))


def test_create_defaults(store):
    project = store.create("Defaults", ["https://example.com/"])
    assert project.max_pages == 50
    assert project.delay == 1000
    assert project.viewport_width == 1920
    assert project.disable_animations is True
    assert project.download_assets is False


@pytest.mark.parametrize("name, urls", [
    ("", ["https://example.com/"]),
    ("Name", []),
    ("Name", ["not a url"]),
    ("Name", ["ftp://example.com/"]),
])
def test_create_rejects_invalid_input(store, name, urls):
    with pytest.raises(ValueError):
        store.create(name, urls)
    assert store.all() == []


def test_create_rejects_unknown_and_invalid_options(store):
    with pytest.raises(ValueError):
        store.create("Name", ["https://example.com/"], colour="blue")
    with pytest.raises(ValueError):
        store.create("Name", ["https://example.com/"], max_pages=-1)
    with pytest.raises(ValueError):
        store.create("Name", ["https://example.com/"], viewport_width=0)


def test_running_project_is_reset_on_load(data_dir, store, project):
    """Test crash recovery of a project persisted as running."""
    store.begin_run(project.id)
    store.record_progress(project.id, 40)
    assert read_projects_file(data_dir)[project.id]["status"] == "running"

    reloaded = ProjectStore(data_dir)
    reloaded.load()
    recovered = reloaded.get(project.id)

    assert recovered.status is ProjectStatus.IDLE
    assert recovered.progress == 0
    assert read_projects_file(data_dir)[project.id]["status"] == "idle"


def test_load_tolerates_corrupt_file(data_dir):
    with open(os.path.join(data_dir, "projects.json"), "w", encoding="utf-8") as f:
        f.write("{not json")
    store = ProjectStore(data_dir)
    store.load()
    assert store.all() == []


def test_update_changes_config(store, project):
    updated = store.update(project.id, max_pages=5, urls=["https://example.org/"])

    assert updated.max_pages == 5
    assert updated.urls == ["https://example.org/"]
    assert updated.created_at == project.created_at
    assert store.get(project.id).max_pages == 5


def test_update_cannot_change_identity(store, project):
    with pytest.raises(ValueError):
        store.update(project.id, id="other")
    with pytest.raises(ValueError):
        store.update(project.id, status="completed")


def test_running_project_rejects_update_and_delete(store, project):
    store.begin_run(project.id)
    with pytest.raises(ProjectConflictError):
        store.update(project.id, max_pages=1)
    with pytest.raises(ProjectConflictError):
        store.delete(project.id)
    with pytest.raises(ProjectConflictError):
        store.begin_run(project.id)


def test_delete_removes_folder(store, data_dir, project):
    folder = os.path.join(data_dir, "fixture-site")
    assert os.path.isdir(folder)

    store.delete(project.id)

    assert not os.path.exists(folder)
    assert project.id not in read_projects_file(data_dir)
    with pytest.raises(ProjectNotFoundError):
        store.get(project.id)


def test_delete_keeps_folder_shared_with_another_project(store, data_dir, project):
    """Test that deleting one of two same-named projects leaves their folder."""
    twin = store.create("fixture site!", ["https://example.org/"])
    folder = os.path.join(data_dir, "fixture-site")
    store.begin_run(twin.id)
    marker = os.path.join(folder, "report.json")
    with open(marker, "w", encoding="utf-8") as f:
        f.write("{}")

    store.delete(project.id)

    assert os.path.exists(marker)
    assert [p.id for p in store.all()] == [twin.id]


def test_unknown_project(store):
    with pytest.raises(ProjectNotFoundError):
        store.get("proj_missing")
    with pytest.raises(ProjectNotFoundError):
        store.begin_run("proj_missing")


def test_record_progress_is_clamped(store, project):
    store.begin_run(project.id)
    assert store.record_progress(project.id, 150) == 99
    assert store.record_progress(project.id, -3) == 0


def test_begin_run_clears_previous_error(store, project):
    store.begin_run(project.id)
    store.fail_run(project.id, "boom")
    running = store.begin_run(project.id)
    assert running.status is ProjectStatus.RUNNING
    assert running.error is None
    assert running.last_run is not None


def test_compute_progress():
    """Test the seed-share progress formula and its clamp."""
    assert compute_progress(0, 1, 0, 10) == 0
    assert compute_progress(0, 1, 5, 10) == 50
    assert compute_progress(0, 2, 1, 2) == 25
    assert compute_progress(1, 2, 1, 2) == 75
    assert compute_progress(1, 2, 2, 2) == 99
    assert compute_progress(1, 1, 0, 10) == 99
    assert compute_progress(0, 2, 7, 0) == 0
    assert compute_progress(1, 2, 7, 0) == 50


def _runner(store, fixture_site, **surface_kwargs):
    surface = FakeSurface(fixture_site, **surface_kwargs)
    return ProjectRunner(store, lambda: FakeRenderer(surface))


@pytest.mark.asyncio
async def test_run_completes_project(store, data_dir, project, fixture_site):
    """Test a full run: status, report, files and events."""
    runner = _runner(store, fixture_site, globals_present={"jQuery"})
    events = []
    runner.add_listener(events.append)

    report = await runner.run(project.id)

    assert report.total_pages == 4
    finished = store.get(project.id)
    assert finished.status is ProjectStatus.COMPLETED
    assert finished.progress == 100
    assert finished.error is None
    assert finished.last_report["totalPages"] == 4

    project_dir = os.path.join(data_dir, "fixture-site")
    assert os.path.exists(os.path.join(project_dir, "report.json"))
    assert os.path.exists(os.path.join(project_dir, "summary.txt"))
    assert os.path.exists(os.path.join(project_dir, "index", "screenshot.png"))
    with open(os.path.join(project_dir, "summary.txt"), encoding="utf-8") as f:
        assert "SITE SCRAPER REPORT - Fixture Site" in f.read()

    assert events[-1].progress == 100
    assert events[-1].status == "Completed"
    assert all(0 <= e.progress <= 99 for e in events[:-1])
    page_events = [e for e in events if e.details and e.details.action == "page_complete"]
    assert len(page_events) == 4
    assert page_events[0].to_dict()["details"]["details"] == "Page 1 of 10"


@pytest.mark.asyncio
async def test_progress_never_reports_100_before_completion(store, fixture_site):
    """Test the clamp across two seeds that fill their page limits."""
    project = store.create(
        "Two Seeds",
        ["https://example.com/", "https://example.com/contact"],
        max_pages=2,
        delay=0,
    )
    runner = _runner(store, fixture_site)
    events = []
    runner.add_listener(events.append)

    report = await runner.run(project.id)

    assert report.total_pages == 4
    progress = [e.progress for e in events if e.details and e.details.action == "page_complete"]
    assert progress == [25, 50, 75, 99]
    assert [e.progress for e in events].count(100) == 1


@pytest.mark.asyncio
async def test_run_failure_is_recorded_not_raised(store, project, fixture_site):
    """Test that a renderer that cannot start fails the project."""
    surface = FakeSurface(fixture_site)
    runner = ProjectRunner(
        store,
        lambda: FakeRenderer(surface, start_error=RuntimeError("browser missing")),
    )
    events = []
    runner.add_listener(events.append)

    assert await runner.run(project.id) is None

    failed = store.get(project.id)
    assert failed.status is ProjectStatus.FAILED
    assert failed.error == "browser missing"
    assert events[-1].status == "Failed: browser missing"

    # A failed project can run again
    runner.renderer_factory = lambda: FakeRenderer(surface)
    assert await runner.run(project.id) is not None
    assert store.get(project.id).status is ProjectStatus.COMPLETED


@pytest.mark.asyncio
async def test_run_rejects_running_project(store, project, fixture_site):
    store.begin_run(project.id)
    with pytest.raises(ProjectConflictError):
        await _runner(store, fixture_site).run(project.id)


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_run(store, project, fixture_site):
    runner = _runner(store, fixture_site)

    def broken(event):
        raise RuntimeError("listener down")

    received = []
    runner.add_listener(broken)
    runner.add_listener(received.append)

    assert await runner.run(project.id) is not None
    assert received[-1].progress == 100

    runner.remove_listener(received.append)
    runner.remove_listener(broken)
    assert runner._listeners == []


class GatedRenderer(FakeRenderer):
    """Renderer whose start waits until the test opens the gate."""

    def __init__(self, surface, gate):
        super().__init__(surface)
        self.gate = gate

    async def start(self):
        await asyncio.get_running_loop().run_in_executor(None, self.gate.wait, 5)
        await super().start()


def test_start_runs_in_background(store, project, fixture_site):
    """Test the background run and the synchronous conflict check."""
    gate = threading.Event()
    surface = FakeSurface(fixture_site)
    runner = ProjectRunner(store, lambda: GatedRenderer(surface, gate))

    thread = runner.start(project.id)
    assert store.get(project.id).status is ProjectStatus.RUNNING
    with pytest.raises(ProjectConflictError):
        runner.start(project.id)

    gate.set()
    thread.join(timeout=10)
    assert not thread.is_alive()
    assert store.get(project.id).status is ProjectStatus.COMPLETED
