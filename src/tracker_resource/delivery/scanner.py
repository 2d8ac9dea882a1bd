"""Commit reference scanning.

Reads ``git log`` in each repository and extracts ``#<digits>`` story
references from commit messages. Repositories are scanned independently; a
repository that cannot be read is recorded as a scan error and the remaining
repositories are still scanned.
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# "#123" not preceded by a word char or another "#", digits not followed by a word char
_STORY_REF_PATTERN = re.compile(r"(?<![\w#])#(\d+)(?!\w)")

# story ids fit in a signed 64-bit integer
_MAX_ID_DIGITS = 18

DEFAULT_MAX_COMMITS = 1000

_GIT_TIMEOUT = 30
_GIT_LOG_TIMEOUT = 60

# unit/record separators keep multi-line bodies intact
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = f"%H{_FIELD_SEP}%s{_FIELD_SEP}%B{_RECORD_SEP}"


@dataclass(frozen=True)
class CommitReference:
    """A commit that mentions a story."""

    repo: str
    sha: str
    subject: str


@dataclass(frozen=True)
class RepoScanError:
    repo: str
    message: str


@dataclass
class ScanResult:
    """Story references found across all scanned repositories."""

    references: dict[int, list[CommitReference]] = field(default_factory=dict)
    errors: list[RepoScanError] = field(default_factory=list)
    repos_scanned: int = 0
    commits_scanned: int = 0

    @property
    def story_ids(self) -> list[int]:
        return sorted(self.references)

    def add(self, story_id: int, reference: CommitReference) -> None:
        refs = self.references.setdefault(story_id, [])
        if reference not in refs:
            refs.append(reference)


class RepoScanFailed(Exception):
    """Raised when one repository cannot be scanned."""


def extract_story_ids(message: str) -> list[int]:
    """Return distinct story ids referenced in ``message``, in order of appearance."""
    found: list[int] = []
    for match in _STORY_REF_PATTERN.finditer(message):
        digits = match.group(1)
        if len(digits) > _MAX_ID_DIGITS:
            logger.debug("Skipping oversized story reference #%s", digits)
            continue
        story_id = int(digits)
        if story_id == 0 or story_id in found:
            continue
        found.append(story_id)
    return found


def _run_git(
    repo_path: Path,
    args: list[str],
    timeout: int = _GIT_TIMEOUT,
    *,
    check: bool = True,
) -> str | None:
    """Run git in ``repo_path`` and return stdout.

    With ``check=False`` a nonzero exit returns None instead of raising.
    """
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=repo_path,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise RepoScanFailed("git executable not found on PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise RepoScanFailed(f"git command timed out: git {' '.join(args)}") from exc

    if completed.returncode != 0:
        if not check:
            return None
        detail = (completed.stderr or completed.stdout or "").strip().splitlines()
        raise RepoScanFailed(detail[0] if detail else f"git {args[0]} exited {completed.returncode}")
    return completed.stdout


def _iter_commits(log_output: str) -> Iterator[tuple[str, str, str]]:
    for record in log_output.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        parts = record.split(_FIELD_SEP, 2)
        if len(parts) != 3:
            continue
        sha, subject, body = parts
        yield sha.strip(), subject, body


def scan_repository(
    repo_path: Path,
    *,
    since: str | None = None,
    max_commits: int = DEFAULT_MAX_COMMITS,
    label: str | None = None,
) -> tuple[dict[int, list[CommitReference]], int]:
    """Scan one repository's history for story references.

    History is ``HEAD`` limited to ``max_commits`` commits, or ``since..HEAD``
    when ``since`` is given.

    Returns:
        (story id -> commit references, number of commits read)

    Raises:
        RepoScanFailed: path missing, not a git repository, or git failed
    """
    name = label or str(repo_path)
    if not repo_path.is_dir():
        raise RepoScanFailed(f"repository path does not exist: {repo_path}")

    if since and since.startswith("-"):
        raise RepoScanFailed(f"invalid revision {since!r}")

    _run_git(repo_path, ["rev-parse", "--git-dir"])
    if _run_git(repo_path, ["rev-parse", "--verify", "--quiet", "HEAD"], check=False) is None:
        logger.info("Repository %s has no commits yet", name)
        return {}, 0

    args = ["log", f"--format={_LOG_FORMAT}", f"--max-count={max_commits}"]
    args.append(f"{since}..HEAD" if since else "HEAD")
    output = _run_git(repo_path, args, timeout=_GIT_LOG_TIMEOUT) or ""

    references: dict[int, list[CommitReference]] = {}
    commits = 0
    for sha, subject, body in _iter_commits(output):
        commits += 1
        for story_id in extract_story_ids(body or subject):
            references.setdefault(story_id, []).append(
                CommitReference(repo=name, sha=sha, subject=subject)
            )
    return references, commits


def scan_repositories(
    repos: Iterable[Path],
    *,
    root: Path | None = None,
    since: str | None = None,
    max_commits: int = DEFAULT_MAX_COMMITS,
) -> ScanResult:
    """Scan each repository in turn and merge the references found.

    Relative repository paths are resolved against ``root``.
    """
    result = ScanResult()
    for repo in repos:
        repo_path = repo if root is None or repo.is_absolute() else root / repo
        label = str(repo)
        try:
            references, commits = scan_repository(
                repo_path, since=since, max_commits=max_commits, label=label
            )
        except RepoScanFailed as exc:
            logger.warning("Skipping repository %s: %s", label, exc)
            result.errors.append(RepoScanError(repo=label, message=str(exc)))
            continue

        result.repos_scanned += 1
        result.commits_scanned += commits
        for story_id, refs in references.items():
            for ref in refs:
                result.add(story_id, ref)
        logger.info(
            "Scanned %s: %d commits, %d story references", label, commits, len(references)
        )
    return result
