"""Deliver ready stories and attach their comments.

Each story yields a ``DeliveryOutcome`` tagged with an ``OutcomeKind``:

- ``delivered``: state set to delivered and comment posted;
- ``isolated_failure``: this story failed, the loop moves on;
- ``fatal_failure``: the tracker rejected the credentials; the loop stops.

A failed state transition skips the comment. A failed comment never undoes
the transition.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from tracker_resource.delivery.resolver import ReadyStory
from tracker_resource.tracker.client import TrackerClient, TrackerError, TrackerHTTPError
from tracker_resource.tracker.models import Story, StoryState

logger = logging.getLogger(__name__)


class OutcomeKind(StrEnum):
    DELIVERED = "delivered"
    ISOLATED_FAILURE = "isolated_failure"
    FATAL_FAILURE = "fatal_failure"


class DeliveryStep(StrEnum):
    DELIVER = "deliver"
    COMMENT = "comment"


@dataclass(frozen=True)
class DeliveryOutcome:
    story: Story
    kind: OutcomeKind
    step: DeliveryStep | None = None
    error: str | None = None

    @property
    def delivered(self) -> bool:
        """True when the state transition went through, even if the comment failed."""
        return self.kind is OutcomeKind.DELIVERED or self.step is DeliveryStep.COMMENT

    @property
    def failed(self) -> bool:
        return self.kind is not OutcomeKind.DELIVERED


@dataclass
class ExecutionResult:
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    not_attempted: list[Story] = field(default_factory=list)

    @property
    def delivered(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.kind is OutcomeKind.DELIVERED]

    @property
    def failures(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def fatal(self) -> DeliveryOutcome | None:
        for outcome in self.outcomes:
            if outcome.kind is OutcomeKind.FATAL_FAILURE:
                return outcome
        return None

    @property
    def success(self) -> bool:
        return not self.failures and not self.not_attempted


def _failure_kind(exc: TrackerError) -> OutcomeKind:
    if isinstance(exc, TrackerHTTPError) and exc.is_auth_failure:
        return OutcomeKind.FATAL_FAILURE
    return OutcomeKind.ISOLATED_FAILURE


def deliver_one(client: TrackerClient, ready: ReadyStory) -> DeliveryOutcome:
    story = ready.story
    if story.state is not StoryState.FINISHED:
        return DeliveryOutcome(
            story,
            OutcomeKind.ISOLATED_FAILURE,
            DeliveryStep.DELIVER,
            f"story is {story.state.value}; only finished stories are delivered",
        )

    try:
        client.deliver_story(story.id)
    except TrackerError as exc:
        logger.error("Delivering story #%d failed: %s", story.id, exc)
        return DeliveryOutcome(story, _failure_kind(exc), DeliveryStep.DELIVER, str(exc))

    try:
        client.add_comment(story.id, ready.comment)
    except TrackerError as exc:
        logger.error("Story #%d delivered but commenting failed: %s", story.id, exc)
        return DeliveryOutcome(story, _failure_kind(exc), DeliveryStep.COMMENT, str(exc))

    logger.info("Delivered story #%d", story.id)
    return DeliveryOutcome(story, OutcomeKind.DELIVERED)


def execute_deliveries(client: TrackerClient, ready_stories: Iterable[ReadyStory]) -> ExecutionResult:
    """Deliver each ready story in order, continuing past isolated failures."""
    result = ExecutionResult()
    pending = list(ready_stories)
    for index, ready in enumerate(pending):
        outcome = deliver_one(client, ready)
        result.outcomes.append(outcome)
        if outcome.kind is OutcomeKind.FATAL_FAILURE:
            result.not_attempted = [item.story for item in pending[index + 1 :]]
            break
    return result
