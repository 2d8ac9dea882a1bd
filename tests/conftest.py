from __future__ import annotations

import subprocess
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from tests.tracker_resource.fakes import FakeTrackerClient


def run(cmd: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)


def init_repo(repo_dir: Path) -> Path:
    repo_dir.mkdir(parents=True, exist_ok=True)
    run(["git", "init"], cwd=repo_dir)
    run(["git", "config", "user.name", "Tracker Resource"], cwd=repo_dir)
    run(["git", "config", "user.email", "tracker@example.com"], cwd=repo_dir)
    run(["git", "config", "commit.gpgsign", "false"], cwd=repo_dir)
    return repo_dir


@pytest.fixture()
def temp_repo(tmp_path: Path) -> Iterator[Path]:
    yield init_repo(tmp_path / "repo")


@pytest.fixture()
def make_repo(tmp_path: Path) -> Callable[[str], Path]:
    def _make(name: str) -> Path:
        return init_repo(tmp_path / name)

    return _make


@pytest.fixture()
def commit() -> Callable[[Path, str], str]:
    """Create an empty commit with ``message`` and return its SHA."""

    def _commit(repo: Path, message: str) -> str:
        run(["git", "commit", "--allow-empty", "-m", message], cwd=repo)
        return run(["git", "rev-parse", "HEAD"], cwd=repo).stdout.strip()

    return _commit


@pytest.fixture()
def fake_tracker() -> FakeTrackerClient:
    return FakeTrackerClient()
