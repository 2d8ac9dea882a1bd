"""Intersect scanned story references with the tracker's live story list."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from tracker_resource.errors import FatalError
from tracker_resource.tracker.client import TrackerClient, TrackerError
from tracker_resource.tracker.models import Story
from tracker_resource.tracker.pagination import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE, collect_pages

logger = logging.getLogger(__name__)


class ListingError(FatalError):
    """The project's story list could not be retrieved in full."""


@dataclass
class MatchResult:
    matched: list[Story] = field(default_factory=list)
    unknown_ids: list[int] = field(default_factory=list)


def list_project_stories(
    client: TrackerClient,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> list[Story]:
    """Fetch every story in the project, or raise ``ListingError``."""
    doing = f"listing stories for project {client.project_id}"
    try:
        collected = collect_pages(
            lambda limit, offset: client.list_stories(limit=limit, offset=offset),
            page_size=page_size,
            max_pages=max_pages,
        )
    except TrackerError as exc:
        raise ListingError(doing, exc) from exc

    if not collected.complete:
        total = collected.total if collected.total is not None else "unknown"
        raise ListingError(
            doing,
            f"listing incomplete after {collected.pages} pages "
            f"({len(collected.items)} of {total} stories)",
        )
    return collected.items


def match_stories(referenced_ids: Iterable[int], stories: Iterable[Story]) -> MatchResult:
    """Keep the referenced stories that exist in the live listing, by ascending id."""
    live = {story.id: story for story in stories}
    result = MatchResult()
    for story_id in sorted(set(referenced_ids)):
        story = live.get(story_id)
        if story is None:
            logger.warning("Story #%d is referenced by commits but not found in the project", story_id)
            result.unknown_ids.append(story_id)
            continue
        result.matched.append(story)
    return result
