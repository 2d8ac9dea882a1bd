"""Activity resolution: decide which matched stories are ready for delivery.

A story is ready when it is in the ``finished`` state and its activity feed
carries nothing that blocks delivery:

- no blocker left open (created, or reopened, and never resolved or deleted);
- the most recent state change recorded for the story moved it to
  ``finished``. Anything else means the listing is stale;
- the feed was read to the end. A feed cut off by the page bound may hide an
  open blocker, so the story is skipped.

Failing to fetch any feed aborts the whole run before any story is delivered.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from tracker_resource.errors import FatalError
from tracker_resource.tracker.client import TrackerClient, TrackerError
from tracker_resource.tracker.models import Activity, Story, StoryState
from tracker_resource.tracker.pagination import (
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_SIZE,
    Collected,
    collect_pages,
)

logger = logging.getLogger(__name__)


class ActivityFetchError(FatalError):
    """A story's activity feed could not be retrieved."""

    def __init__(self, story_id: int, cause: object) -> None:
        self.story_id = story_id
        super().__init__(f"fetching activity for story #{story_id}", cause)


class SkipReason(StrEnum):
    NOT_FINISHED = "not finished"
    ALREADY_DELIVERED = "already delivered"
    REJECTED = "rejected"
    BLOCKED = "blocked"
    STATE_CHANGED = "state changed"
    ACTIVITY_TRUNCATED = "activity truncated"


@dataclass(frozen=True)
class ReadyStory:
    story: Story
    comment: str


@dataclass(frozen=True)
class SkippedStory:
    story: Story
    reason: SkipReason
    detail: str = ""


@dataclass
class Resolution:
    ready: list[ReadyStory] = field(default_factory=list)
    skipped: list[SkippedStory] = field(default_factory=list)


def fetch_activity(
    client: TrackerClient,
    story_id: int,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> Collected[Activity]:
    """Fetch the story's activity feed in tracker order (newest first).

    ``complete`` on the result is False when the page bound stopped the fetch
    before the oldest event.
    """
    try:
        collected = collect_pages(
            lambda limit, offset: client.story_activity(story_id, limit=limit, offset=offset),
            page_size=page_size,
            max_pages=max_pages,
        )
    except TrackerError as exc:
        raise ActivityFetchError(story_id, exc) from exc

    if not collected.complete:
        logger.warning(
            "Activity for story #%d truncated after %d pages (%d events)",
            story_id,
            collected.pages,
            len(collected.items),
        )
    return collected


def open_blockers(activities: Sequence[Activity]) -> set[int]:
    """Replay blocker changes oldest-first and return the ids still unresolved."""
    blockers: set[int] = set()
    for activity in reversed(activities):
        for change in activity.changes:
            if change.kind != "blocker" or change.id is None:
                continue
            if change.change_type == "delete":
                blockers.discard(change.id)
            elif change.change_type == "create":
                if not change.new_values.get("resolved", False):
                    blockers.add(change.id)
            elif change.change_type == "update" and "resolved" in change.new_values:
                if change.new_values["resolved"]:
                    blockers.discard(change.id)
                else:
                    blockers.add(change.id)
    return blockers


def latest_state_change(story_id: int, activities: Iterable[Activity]) -> str | None:
    for activity in activities:
        state = activity.new_state_for(story_id)
        if state is not None:
            return state
    return None


def classify(
    story: Story,
    activities: Sequence[Activity],
    *,
    complete: bool = True,
) -> tuple[SkipReason, str] | None:
    """Return why ``story`` cannot be delivered, or None when it is ready.

    ``complete`` says whether ``activities`` reaches back to the story's
    first event.
    """
    if story.state is StoryState.REJECTED:
        return SkipReason.REJECTED, ""
    if story.state.precedes(StoryState.FINISHED):
        return SkipReason.NOT_FINISHED, story.state.value
    if story.state is not StoryState.FINISHED:
        return SkipReason.ALREADY_DELIVERED, story.state.value

    if not complete:
        return SkipReason.ACTIVITY_TRUNCATED, f"only the newest {len(activities)} events were read"

    blockers = open_blockers(activities)
    if blockers:
        return SkipReason.BLOCKED, f"{len(blockers)} unresolved blocker(s)"

    latest = latest_state_change(story.id, activities)
    if latest is not None and latest != StoryState.FINISHED.value:
        return SkipReason.STATE_CHANGED, f"moved to {latest}"
    return None


def resolve_ready_stories(
    client: TrackerClient,
    stories: Iterable[Story],
    *,
    comment: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> Resolution:
    """Fetch activity for each story in order and split them into ready / skipped.

    Raises:
        ActivityFetchError: on the first feed that cannot be fetched
    """
    resolution = Resolution()
    for story in stories:
        feed = fetch_activity(client, story.id, page_size=page_size, max_pages=max_pages)
        verdict = classify(story, feed.items, complete=feed.complete)
        if verdict is None:
            resolution.ready.append(ReadyStory(story=story, comment=comment))
            continue

        reason, detail = verdict
        logger.info("Story #%d not ready: %s %s", story.id, reason.value, detail)
        resolution.skipped.append(SkippedStory(story=story, reason=reason, detail=detail))
    return resolution
