"""Request loading and run configuration for the ``out`` command.

Everything here runs before the first tracker call, so any error it raises is
a configuration error reported once and fatal to the run.
"""

from __future__ import annotations

import errno
import logging
import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import httpx
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from tracker_resource.delivery.pipeline import DeliveryOptions
from tracker_resource.delivery.scanner import DEFAULT_MAX_COMMITS
from tracker_resource.errors import FatalError
from tracker_resource.models import OutRequest, Params, Source
from tracker_resource.tracker.client import DEFAULT_TRACKER_URL

LOG_LEVEL_ENV_VAR = "TRACKER_RESOURCE_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


class ConfigurationError(FatalError):
    """Invalid request, unreadable file, or bad connection parameters."""


class Workflow(StrEnum):
    CREATE = "create"
    DELIVER = "deliver"


@dataclass(frozen=True)
class ResourceConfig:
    tracker_url: str
    token: str
    project_id: int


def load_request(raw: str) -> OutRequest:
    try:
        return OutRequest.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError("reading request", _first_validation_error(exc)) from exc


def _first_validation_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def resolve_config(source: Source) -> ResourceConfig:
    """Apply defaults and validate the connection parameters."""
    raw_project_id = str(source.project_id).strip()
    try:
        project_id = int(raw_project_id)
    except ValueError as exc:
        raise ConfigurationError(
            "converting the project ID to an integer",
            f'invalid project ID "{raw_project_id}"',
        ) from exc

    tracker_url = source.tracker_url.strip() or DEFAULT_TRACKER_URL
    _check_tracker_url(tracker_url)

    return ResourceConfig(
        tracker_url=tracker_url,
        token=source.token,
        project_id=project_id,
    )


def _check_tracker_url(url: str) -> None:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise ConfigurationError("parsing the tracker URL", f'invalid URL "{url}": {exc}') from exc
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigurationError("parsing the tracker URL", f'invalid URL "{url}": expected http(s)://host')


def select_workflow(params: Params) -> Workflow:
    if params.comment and params.content:
        raise ConfigurationError("selecting workflow", "content and comment files are mutually exclusive")
    if params.comment:
        return Workflow.DELIVER
    if params.content:
        return Workflow.CREATE
    raise ConfigurationError("selecting workflow", "no content file specified")


def delivery_options(params: Params) -> DeliveryOptions:
    return DeliveryOptions(
        since=params.since or None,
        max_commits=params.max_commits or DEFAULT_MAX_COMMITS,
    )


def read_source_file(sources: Path, relative: str, doing: str) -> str:
    """Read a file named by the request, relative to the sources directory.

    The content is returned exactly as stored; it must be UTF-8.
    """
    path = sources / relative
    try:
        data = path.read_bytes()
    except OSError as exc:
        reason = (exc.strerror or errno.errorcode.get(exc.errno or 0, str(exc))).lower()
        raise ConfigurationError(doing, f"open {path}: {reason}") from exc

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigurationError(doing, f"{path} is not valid UTF-8: {exc.reason}") from exc


def configure_logging(level: str | None = None) -> None:
    """Send log records to stderr; stdout carries only the JSON response."""
    name = (level or os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).strip().upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        raise ConfigurationError("configuring logging", f"unknown log level {name!r}")
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(level=numeric, format="%(message)s", handlers=[handler], force=True)
