"""Tracker client protocol and the Pivotal Tracker v5 HTTP implementation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import httpx

from tracker_resource.tracker.models import Activity, Page, Pagination, Story, StoryState

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TRACKER_URL = "https://www.pivotaltracker.com"
API_PREFIX = "/services/v5"
TOKEN_HEADER = "X-TrackerToken"
PAGINATION_HEADER_PREFIX = "X-Tracker-Pagination-"

_DEFAULT_TIMEOUT_SECONDS = 30.0


class TrackerError(RuntimeError):
    """Raised when a tracker call fails."""


class TrackerHTTPError(TrackerError):
    """Raised when the tracker answers with a non-success status."""

    def __init__(self, method: str, path: str, status_code: int, detail: str) -> None:
        self.method = method
        self.path = path
        self.status_code = status_code
        self.detail = detail
        message = f"{method} {path} returned {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class TrackerClient(Protocol):
    """Project-scoped capability set consumed by the delivery pipeline."""

    project_id: int

    def list_stories(self, *, limit: int, offset: int) -> Page[Story]: ...

    def story_activity(self, story_id: int, *, limit: int, offset: int) -> Page[Activity]: ...

    def deliver_story(self, story_id: int) -> None: ...

    def add_comment(self, story_id: int, text: str) -> None: ...

    def create_story(self, story: Story) -> Story: ...


def _parse_pagination(response: httpx.Response, *, limit: int, offset: int, returned: int) -> Pagination:
    def header_int(name: str) -> int | None:
        raw = response.headers.get(PAGINATION_HEADER_PREFIX + name)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    header_offset = header_int("Offset")
    header_limit = header_int("Limit")
    header_returned = header_int("Returned")
    return Pagination(
        offset=header_offset if header_offset is not None else offset,
        limit=header_limit if header_limit is not None else limit,
        returned=header_returned if header_returned is not None else returned,
        total=header_int("Total"),
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(body, dict):
        for key in ("error", "general_problem", "possible_fix"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return response.text.strip()


class ProjectClient:
    """HTTP tracker client bound to a single project.

    One ``httpx.Client`` is held for the lifetime of the object and reused for
    every call; use it as a context manager to close the connection pool.
    """

    def __init__(
        self,
        token: str,
        project_id: int,
        *,
        base_url: str = DEFAULT_TRACKER_URL,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.project_id = project_id
        self.base_url = (base_url or DEFAULT_TRACKER_URL).rstrip("/")
        self._http = httpx.Client(
            base_url=self.base_url + API_PREFIX,
            headers={TOKEN_HEADER: token},
            timeout=timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> ProjectClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def list_stories(self, *, limit: int, offset: int) -> Page[Story]:
        response = self._request("GET", "/stories", params={"limit": limit, "offset": offset})
        stories = self._decode(response, lambda body: [Story.from_dict(item) for item in body])
        return Page(
            items=stories,
            pagination=_parse_pagination(response, limit=limit, offset=offset, returned=len(stories)),
        )

    def story_activity(self, story_id: int, *, limit: int, offset: int) -> Page[Activity]:
        response = self._request(
            "GET",
            f"/stories/{story_id}/activity",
            params={"limit": limit, "offset": offset},
        )
        activities = self._decode(response, lambda body: [Activity.from_dict(item) for item in body])
        return Page(
            items=activities,
            pagination=_parse_pagination(response, limit=limit, offset=offset, returned=len(activities)),
        )

    def deliver_story(self, story_id: int) -> None:
        self._request("PUT", f"/stories/{story_id}", json={"current_state": StoryState.DELIVERED.value})

    def add_comment(self, story_id: int, text: str) -> None:
        self._request("POST", f"/stories/{story_id}/comments", json={"text": text})

    def create_story(self, story: Story) -> Story:
        response = self._request("POST", "/stories", json=story.to_payload())
        return self._decode(response, Story.from_dict)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        project_path = f"/projects/{self.project_id}{path}"
        logger.debug("%s %s", method, project_path)
        try:
            response = self._http.request(method, project_path, **kwargs)
        except httpx.HTTPError as exc:
            raise TrackerError(f"{method} {project_path} failed: {exc}") from exc

        if response.is_error:
            raise TrackerHTTPError(method, project_path, response.status_code, _error_detail(response))
        return response

    @staticmethod
    def _decode(response: httpx.Response, build: Callable[[Any], T]) -> T:
        try:
            return build(response.json())
        except (ValueError, KeyError, TypeError) as exc:
            raise TrackerError(
                f"unexpected response from {response.request.method} {response.request.url.path}: {exc}"
            ) from exc
