"""End-to-end tests for the ``out`` command.

The command runs against real git repositories and an ``httpx.MockTransport``
standing in for the tracker API.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from typer.testing import CliRunner

from tracker_resource import app
from tracker_resource.cli.commands import out as out_module
from tracker_resource.tracker.client import ProjectClient

runner = CliRunner()

API_PREFIX = "/services/v5/projects/1234"


class FakeTrackerAPI:
    """Routes requests by (method, path) and records what was sent."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, Any]] = {}
        self.requests: list[tuple[str, str, Any]] = []

    def route(self, method: str, path: str, status_code: int = 200, body: Any = None) -> None:
        self.routes[(method, path)] = (status_code, body if body is not None else {})

    def story(self, story_id: int, state: str = "finished", activity: list[dict] | None = None) -> dict:
        data = {"id": story_id, "name": f"Story {story_id}", "story_type": "feature", "current_state": state}
        self.route("GET", f"/stories/{story_id}/activity", body=activity or [])
        self.route("PUT", f"/stories/{story_id}", body={**data, "current_state": "delivered"})
        self.route("POST", f"/stories/{story_id}/comments", body={"id": 1, "text": ""})
        return data

    def writes(self) -> list[tuple[str, str, Any]]:
        return [r for r in self.requests if r[0] in ("PUT", "POST")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(API_PREFIX)
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))
        status_code, payload = self.routes.get((request.method, path), (404, {"error": "not found"}))
        return httpx.Response(status_code, json=payload)


@pytest.fixture()
def tracker_api(monkeypatch) -> FakeTrackerAPI:
    api = FakeTrackerAPI()

    def build_client(config):
        assert config.token == "abc"
        return ProjectClient(
            config.token,
            config.project_id,
            base_url="https://tracker.test",
            transport=httpx.MockTransport(api),
        )

    monkeypatch.setattr(out_module, "build_client", build_client)
    monkeypatch.delenv("TRACKER_RESOURCE_LOG_LEVEL", raising=False)
    return api


def _invoke(sources: Path, params: dict, *, source: dict | None = None):
    request = {"source": source or {"token": "abc", "project_id": "1234"}, "params": params}
    return runner.invoke(app, ["out", str(sources)], input=json.dumps(request))


@pytest.fixture()
def delivery_sources(tmp_path, make_repo, commit):
    repo = make_repo("app")
    commit(repo, "[#123456] implement login")
    (tmp_path / "comment.txt").write_text("some custom comment")
    return tmp_path


class TestConfigurationErrors:
    def test_no_file_given(self, tmp_path, tracker_api):
        result = _invoke(tmp_path, {})

        assert result.exit_code == 1
        assert "no content file specified" in result.stderr
        assert result.stdout == ""
        assert tracker_api.requests == []

    def test_missing_comment_file(self, tmp_path, tracker_api):
        result = _invoke(tmp_path, {"comment": "missing.txt", "repos": ["app"]})

        assert result.exit_code == 1
        assert "error reading comment file: open" in result.stderr
        assert tracker_api.requests == []

    def test_missing_content_file(self, tmp_path, tracker_api):
        result = _invoke(tmp_path, {"content": "missing.txt"})

        assert result.exit_code == 1
        assert "error reading content file: open" in result.stderr
        assert tracker_api.requests == []

    def test_invalid_project_id(self, tmp_path, tracker_api):
        (tmp_path / "name.txt").write_text("x")

        result = _invoke(tmp_path, {"content": "name.txt"}, source={"token": "abc", "project_id": "abc"})

        assert result.exit_code == 1
        assert 'invalid project ID "abc"' in result.stderr
        assert tracker_api.requests == []

    def test_malformed_tracker_url(self, tmp_path, tracker_api):
        (tmp_path / "name.txt").write_text("x")

        result = _invoke(
            tmp_path,
            {"content": "name.txt"},
            source={"tracker_url": "http://[bad", "token": "abc", "project_id": "1234"},
        )

        assert result.exit_code == 1
        assert "error parsing the tracker URL" in result.stderr
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert tracker_api.requests == []

    def test_invalid_log_level(self, tmp_path, tracker_api):
        result = runner.invoke(app, ["--log-level", "loud", "out", str(tmp_path)], input="{}")

        assert result.exit_code == 1
        assert "unknown log level" in result.stderr


class TestCreateStory:
    def test_creates_story_from_content_file(self, tmp_path, tracker_api):
        (tmp_path / "name.txt").write_text("fake-story-name")
        tracker_api.route(
            "POST",
            "/stories",
            body={"id": 2300, "name": "fake-story-name", "story_type": "chore", "current_state": "unscheduled"},
        )

        result = _invoke(tmp_path, {"content": "name.txt"})

        assert result.exit_code == 0, result.output
        assert "Story created with ID: 2300 Name: fake-story-name" in result.stderr
        assert tracker_api.requests == [
            ("POST", "/stories", {"name": "fake-story-name", "story_type": "chore", "current_state": "unscheduled"})
        ]
        response = json.loads(result.stdout)
        assert {"name": "id", "value": "2300"} in response["metadata"]

    def test_creation_failure(self, tmp_path, tracker_api):
        (tmp_path / "name.txt").write_text("fake-story-name")
        tracker_api.route("POST", "/stories", status_code=400, body={"error": "invalid story"})

        result = _invoke(tmp_path, {"content": "name.txt"})

        assert result.exit_code == 1
        assert "error creating story:" in result.stderr
        assert result.stdout == ""


class TestDeliverStories:
    def test_delivers_finished_story_with_comment(self, delivery_sources, tracker_api):
        tracker_api.route("GET", "/stories", body=[tracker_api.story(123456)])

        result = _invoke(delivery_sources, {"comment": "comment.txt", "repos": ["app"]})

        assert result.exit_code == 0, result.output
        assert tracker_api.writes() == [
            ("PUT", "/stories/123456", {"current_state": "delivered"}),
            ("POST", "/stories/123456/comments", {"text": "some custom comment"}),
        ]
        response = json.loads(result.stdout)
        assert "time" in response["version"]
        assert {"name": "delivered", "value": "#123456"} in response["metadata"]
        assert "Delivered: 1, Failed: 0, Skipped: 0" in result.stderr

    def test_unfinished_story_is_left_alone(self, delivery_sources, tracker_api):
        tracker_api.route("GET", "/stories", body=[tracker_api.story(123456, state="started")])

        result = _invoke(delivery_sources, {"comment": "comment.txt", "repos": ["app"]})

        assert result.exit_code == 0, result.output
        assert tracker_api.writes() == []
        assert "#123456 skipped: not finished (started)" in result.stderr

    def test_activity_failure_aborts_before_any_delivery(self, delivery_sources, commit, tracker_api):
        commit(delivery_sources / "app", "[#565] second story")
        tracker_api.route("GET", "/stories", body=[tracker_api.story(123456), tracker_api.story(565)])
        tracker_api.route("GET", "/stories/565/activity", status_code=500, body={"error": "boom"})

        result = _invoke(delivery_sources, {"comment": "comment.txt", "repos": ["app"]})

        assert result.exit_code == 1
        assert "error fetching activity for story #565:" in result.stderr
        assert tracker_api.writes() == []
        assert result.stdout == ""

    def test_delivery_failure_still_reports(self, delivery_sources, commit, tracker_api):
        commit(delivery_sources / "app", "[#100] earlier story")
        tracker_api.route("GET", "/stories", body=[tracker_api.story(100), tracker_api.story(123456)])
        tracker_api.route("PUT", "/stories/100", status_code=500, body={"error": "boom"})

        result = _invoke(delivery_sources, {"comment": "comment.txt", "repos": ["app"]})

        assert result.exit_code == 1
        assert ("PUT", "/stories/123456", {"current_state": "delivered"}) in tracker_api.writes()
        response = json.loads(result.stdout)
        assert {"name": "failed", "value": "#100"} in response["metadata"]
        assert "#100 failed at deliver" in result.stderr

    def test_rejected_credentials_halt_the_run(self, delivery_sources, commit, tracker_api):
        commit(delivery_sources / "app", "[#100] earlier story")
        tracker_api.route("GET", "/stories", body=[tracker_api.story(100), tracker_api.story(123456)])
        tracker_api.route("PUT", "/stories/100", status_code=401, body={"error": "invalid token"})

        result = _invoke(delivery_sources, {"comment": "comment.txt", "repos": ["app"]})

        assert result.exit_code == 1
        assert "error delivering story #100:" in result.stderr
        assert tracker_api.writes() == [("PUT", "/stories/100", {"current_state": "delivered"})]
        assert result.stdout == ""

    def test_no_references_makes_no_tracker_calls(self, tmp_path, make_repo, commit, tracker_api):
        commit(make_repo("app"), "chore: no story")
        (tmp_path / "comment.txt").write_text("c")

        result = _invoke(tmp_path, {"comment": "comment.txt", "repos": ["app"]})

        assert result.exit_code == 0, result.output
        assert tracker_api.requests == []
        assert json.loads(result.stdout)["metadata"] == [
            {"name": "matched", "value": ""},
            {"name": "delivered", "value": ""},
        ]
