"""Tracker domain records: stories, activity and pagination metadata.

Stories and activities are decoded from the Pivotal Tracker v5 JSON shapes.
Only the fields the delivery workflow reads are kept; everything else in the
payload is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class StoryType(StrEnum):
    FEATURE = "feature"
    BUG = "bug"
    CHORE = "chore"
    RELEASE = "release"


class StoryState(StrEnum):
    """Tracker workflow states."""

    UNSCHEDULED = "unscheduled"
    UNSTARTED = "unstarted"
    STARTED = "started"
    FINISHED = "finished"
    DELIVERED = "delivered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def rank(self) -> int:
        """Position in the workflow ordering (higher is further along)."""
        return _STATE_RANK[self]

    def precedes(self, other: StoryState) -> bool:
        return self.rank < other.rank


# rejected stories have been delivered once and bounced back
_STATE_RANK: dict[StoryState, int] = {
    StoryState.UNSCHEDULED: 0,
    StoryState.UNSTARTED: 1,
    StoryState.STARTED: 2,
    StoryState.FINISHED: 3,
    StoryState.DELIVERED: 4,
    StoryState.REJECTED: 5,
    StoryState.ACCEPTED: 6,
}


@dataclass(frozen=True)
class Story:
    """A story as listed by the tracker."""

    id: int
    name: str
    story_type: StoryType = StoryType.FEATURE
    state: StoryState = StoryState.UNSCHEDULED
    url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Body used when creating the story."""
        return {
            "name": self.name,
            "story_type": self.story_type.value,
            "current_state": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Story:
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            story_type=StoryType(data.get("story_type", StoryType.FEATURE.value)),
            state=StoryState(data.get("current_state", StoryState.UNSCHEDULED.value)),
            url=data.get("url"),
        )


@dataclass(frozen=True)
class ActivityChange:
    """One resource change carried by an activity."""

    kind: str
    change_type: str
    id: int | None = None
    new_values: dict[str, Any] = field(default_factory=dict)
    original_values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityChange:
        raw_id = data.get("id")
        return cls(
            kind=str(data.get("kind", "")),
            change_type=str(data.get("change_type", "")),
            id=int(raw_id) if raw_id is not None else None,
            new_values=dict(data.get("new_values") or {}),
            original_values=dict(data.get("original_values") or {}),
        )


@dataclass(frozen=True)
class Activity:
    """A time-stamped event recorded against a story."""

    kind: str
    guid: str
    occurred_at: str
    message: str = ""
    highlight: str = ""
    changes: tuple[ActivityChange, ...] = ()

    def new_state_for(self, story_id: int) -> str | None:
        """Return the ``current_state`` this activity moved ``story_id`` to, if any."""
        for change in self.changes:
            if change.kind == "story" and change.id == story_id:
                state = change.new_values.get("current_state")
                if state is not None:
                    return str(state)
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Activity:
        return cls(
            kind=str(data.get("kind", "")),
            guid=str(data.get("guid", "")),
            occurred_at=str(data.get("occurred_at", "")),
            message=str(data.get("message", "")),
            highlight=str(data.get("highlight", "")),
            changes=tuple(ActivityChange.from_dict(item) for item in data.get("changes") or []),
        )


@dataclass(frozen=True)
class Pagination:
    """Pagination metadata returned alongside a list response."""

    offset: int
    limit: int
    returned: int
    total: int | None = None

    @property
    def next_offset(self) -> int:
        return self.offset + self.returned

    def has_more(self) -> bool:
        if self.returned == 0:
            return False
        if self.total is not None:
            return self.next_offset < self.total
        return self.returned >= self.limit


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    pagination: Pagination
