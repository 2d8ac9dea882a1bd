"""Delivery pipeline: scan -> match -> resolve -> deliver.

Also hosts the story creation workflow used when the request names a content
file instead of a comment file.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from tracker_resource.delivery.executor import ExecutionResult, execute_deliveries
from tracker_resource.delivery.matcher import list_project_stories, match_stories
from tracker_resource.delivery.resolver import Resolution, resolve_ready_stories
from tracker_resource.delivery.scanner import DEFAULT_MAX_COMMITS, ScanResult, scan_repositories
from tracker_resource.errors import FatalError
from tracker_resource.tracker.client import TrackerClient, TrackerError
from tracker_resource.tracker.models import Story, StoryState, StoryType
from tracker_resource.tracker.pagination import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

__all__ = [
    "DeliveryAbortedError",
    "DeliveryOptions",
    "DeliveryReport",
    "StoryCreationError",
    "create_story",
    "format_delivery_summary",
    "run_delivery",
]


class StoryCreationError(FatalError):
    def __init__(self, cause: object) -> None:
        super().__init__("creating story", cause)


class DeliveryAbortedError(FatalError):
    """The tracker refused a delivery in a way that affects every story."""

    def __init__(self, story_id: int, cause: object) -> None:
        self.story_id = story_id
        super().__init__(f"delivering story #{story_id}", cause)


@dataclass(frozen=True)
class DeliveryOptions:
    since: str | None = None
    max_commits: int = DEFAULT_MAX_COMMITS
    story_page_size: int = DEFAULT_PAGE_SIZE
    activity_page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES


@dataclass
class DeliveryReport:
    scan: ScanResult
    matched: list[Story] = field(default_factory=list)
    unknown_ids: list[int] = field(default_factory=list)
    resolution: Resolution = field(default_factory=Resolution)
    execution: ExecutionResult = field(default_factory=ExecutionResult)

    @property
    def success(self) -> bool:
        return self.execution.success

    def metadata(self) -> list[tuple[str, str]]:
        """Name/value pairs describing the run for the JSON response."""

        def ids(stories: Sequence[Story]) -> str:
            return ", ".join(f"#{story.id}" for story in stories)

        pairs = [
            ("matched", ids(self.matched)),
            ("delivered", ids([o.story for o in self.execution.delivered])),
        ]
        failures = self.execution.failures
        if failures:
            pairs.append(("failed", ids([o.story for o in failures])))
        if self.execution.not_attempted:
            pairs.append(("not_attempted", ids(self.execution.not_attempted)))
        return pairs


def run_delivery(
    client: TrackerClient,
    repos: Sequence[Path],
    comment: str,
    *,
    root: Path | None = None,
    options: DeliveryOptions | None = None,
) -> DeliveryReport:
    """Deliver every finished story referenced from the repositories' commits.

    Raises:
        ListingError: the project's stories could not be listed in full
        ActivityFetchError: a matched story's activity could not be fetched;
            raised before any story is delivered
    """
    options = options or DeliveryOptions()

    scan = scan_repositories(repos, root=root, since=options.since, max_commits=options.max_commits)
    report = DeliveryReport(scan=scan)
    if not scan.references:
        logger.info("No story references found in %d repositories", scan.repos_scanned)
        return report

    stories = list_project_stories(
        client, page_size=options.story_page_size, max_pages=options.max_pages
    )
    match = match_stories(scan.story_ids, stories)
    report.matched = match.matched
    report.unknown_ids = match.unknown_ids
    if not match.matched:
        return report

    report.resolution = resolve_ready_stories(
        client,
        match.matched,
        comment=comment,
        page_size=options.activity_page_size,
        max_pages=options.max_pages,
    )
    report.execution = execute_deliveries(client, report.resolution.ready)
    return report


def create_story(client: TrackerClient, name: str) -> Story:
    """Create an unscheduled chore named ``name``."""
    story = Story(id=0, name=name, story_type=StoryType.CHORE, state=StoryState.UNSCHEDULED)
    try:
        return client.create_story(story)
    except TrackerError as exc:
        raise StoryCreationError(exc) from exc


def format_delivery_summary(report: DeliveryReport) -> list[str]:
    """Build the human-readable lines printed after a delivery run.

    Example output::

        Delivered: 2, Failed: 1, Skipped: 1
          #101 delivered
          #102 failed at deliver: PUT /projects/1/stories/102 returned 500
          #103 skipped: not finished (started)
    """
    execution = report.execution
    skipped = report.resolution.skipped
    lines = [
        f"Delivered: {len(execution.delivered)}, "
        f"Failed: {len(execution.failures)}, "
        f"Skipped: {len(skipped)}"
    ]
    for outcome in execution.outcomes:
        if outcome.failed:
            lines.append(f"  #{outcome.story.id} failed at {outcome.step}: {outcome.error}")
        else:
            lines.append(f"  #{outcome.story.id} delivered")
    for story in execution.not_attempted:
        lines.append(f"  #{story.id} not attempted")
    for item in skipped:
        suffix = f" ({item.detail})" if item.detail else ""
        lines.append(f"  #{item.story.id} skipped: {item.reason}{suffix}")
    for story_id in report.unknown_ids:
        lines.append(f"  #{story_id} not found in project")
    for error in report.scan.errors:
        lines.append(f"  repository {error.repo}: {error.message}")
    return lines
