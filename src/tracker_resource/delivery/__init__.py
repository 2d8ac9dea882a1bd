"""Commit-driven story delivery."""

from tracker_resource.delivery.executor import DeliveryOutcome, OutcomeKind, execute_deliveries
from tracker_resource.delivery.matcher import ListingError, match_stories
from tracker_resource.delivery.pipeline import (
    DeliveryAbortedError,
    DeliveryOptions,
    DeliveryReport,
    StoryCreationError,
    create_story,
    format_delivery_summary,
    run_delivery,
)
from tracker_resource.delivery.resolver import ActivityFetchError, resolve_ready_stories
from tracker_resource.delivery.scanner import extract_story_ids, scan_repositories

__all__ = [
    "ActivityFetchError",
    "DeliveryAbortedError",
    "DeliveryOptions",
    "DeliveryOutcome",
    "DeliveryReport",
    "ListingError",
    "OutcomeKind",
    "StoryCreationError",
    "create_story",
    "execute_deliveries",
    "extract_story_ids",
    "format_delivery_summary",
    "match_stories",
    "resolve_ready_stories",
    "run_delivery",
    "scan_repositories",
]
