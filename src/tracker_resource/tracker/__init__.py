"""Tracker integration surface: client protocol, HTTP client and records."""

from tracker_resource.tracker.client import (
    DEFAULT_TRACKER_URL,
    ProjectClient,
    TrackerClient,
    TrackerError,
    TrackerHTTPError,
)
from tracker_resource.tracker.models import (
    Activity,
    ActivityChange,
    Page,
    Pagination,
    Story,
    StoryState,
    StoryType,
)

__all__ = [
    "DEFAULT_TRACKER_URL",
    "Activity",
    "ActivityChange",
    "Page",
    "Pagination",
    "ProjectClient",
    "Story",
    "StoryState",
    "StoryType",
    "TrackerClient",
    "TrackerError",
    "TrackerHTTPError",
]
