"""
Report assembly for finished crawl runs.

Aggregates per-page technologies, derives the site structure and writes
``report.json`` plus the plain-text ``summary.txt``.
"""

import json
import os
from typing import Dict, List, Optional, Sequence

from ..models import (
    Confidence,
    PageRecord,
    SiteReport,
    SiteStructureEntry,
    TechnologyMatch,
)
from ..utils.log import get_logger
from ..utils.paths import ensure_dir


logger = get_logger("report")

BANNER = "=" * 60
RULE = "-" * 60


def aggregate_technologies(pages: Sequence[PageRecord]) -> List[TechnologyMatch]:
    """
    Merge per-page technologies into one entry per name.

    A later high-confidence observation replaces an earlier entry; otherwise
    the first observation is kept. Names keep their first-seen order.
    """
    merged: Dict[str, TechnologyMatch] = {}
    for page in pages:
        for tech in page.technologies:
            if tech.name not in merged or tech.confidence is Confidence.HIGH:
                merged[tech.name] = tech
    return list(merged.values())


def build_site_structure(pages: Sequence[PageRecord]) -> List[SiteStructureEntry]:
    """One entry per page listing its distinct internal link targets."""
    structure = []
    for page in pages:
        children = list(dict.fromkeys(page.internal_links))
        structure.append(SiteStructureEntry(url=page.url, title=page.title, children=children))
    return structure


def build_report(
    base_url: str,
    pages: Sequence[PageRecord],
    start_time: str,
    end_time: str,
    duration: float,
    base_urls: Optional[Sequence[str]] = None
) -> SiteReport:
    """
    Assemble the final report of a run.

    Args:
        base_url: First seed URL of the run
        pages: Page records in crawl order
        start_time: ISO timestamp of the run start
        end_time: ISO timestamp of the run end
        duration: Wall-clock duration in seconds
        base_urls: All seed URLs of the run

    Returns:
        SiteReport for the run
    """
    pages = list(pages)
    return SiteReport(
        base_url=base_url,
        base_urls=list(base_urls or [base_url]),
        total_pages=len(pages),
        pages=pages,
        technologies=aggregate_technologies(pages),
        site_structure=build_site_structure(pages),
        start_time=start_time,
        end_time=end_time,
        duration=duration,
    )


def generate_summary(report: SiteReport, project_name: Optional[str] = None) -> str:
    """Render the human-readable text summary of a report."""
    title = "SITE SCRAPER REPORT"
    if project_name:
        title = f"{title} - {project_name}"

    lines = [
        BANNER,
        title,
        BANNER,
        "",
        f"Base URL: {report.base_url}",
        f"Total Pages: {report.total_pages}",
        f"Duration: {report.duration:.2f} seconds",
        f"Start: {report.start_time}",
        f"End: {report.end_time}",
        "",
        RULE,
        "DETECTED TECHNOLOGIES",
        RULE,
    ]

    if report.technologies:
        for tech in report.technologies:
            version = f" v{tech.version}" if tech.version else ""
            lines.append(
                f"  - {tech.name}{version} ({tech.category}, {tech.confidence.value} confidence)"
            )
    else:
        lines.append("No technologies detected")

    lines += ["", RULE, "PAGES SCRAPED", RULE]
    for page in report.pages:
        lines.append(f"  {page.url}")
        lines.append(f"    Title: {page.title or '(no title)'}")
        lines.append(
            f"    Links: {len(page.links)} | Images: {len(page.images)} | "
            f"Load time: {page.load_time}ms"
        )
        if page.screenshot_path:
            lines.append(f"    Screenshot: {page.screenshot_path}")
        lines.append("")

    return "\n".join(lines)


def save_report(
    report: SiteReport,
    output_dir: str,
    project_name: Optional[str] = None
) -> Dict[str, str]:
    """
    Write ``report.json`` and ``summary.txt`` into output_dir.

    Returns:
        Mapping of artifact name to the path written
    """
    ensure_dir(output_dir)
    report_path = os.path.join(output_dir, "report.json")
    summary_path = os.path.join(output_dir, "summary.txt")

    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)

    with open(summary_path, "w", encoding="utf-8") as f:
        f.write(generate_summary(report, project_name))

    logger.debug(f"Report saved to {report_path}")
    return {"report": report_path, "summary": summary_path}
