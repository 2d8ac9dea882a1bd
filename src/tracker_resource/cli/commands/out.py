"""``out`` command: create a story, or deliver stories referenced by commits.

Reads one JSON request from stdin, resolves the request's file and repository
paths against the sources directory, and writes one JSON response to stdout.
Diagnostics go to stderr.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from tracker_resource.config import (
    ResourceConfig,
    Workflow,
    delivery_options,
    load_request,
    read_source_file,
    resolve_config,
    select_workflow,
)
from tracker_resource.delivery.pipeline import (
    DeliveryAbortedError,
    create_story,
    format_delivery_summary,
    run_delivery,
)
from tracker_resource.errors import FatalError
from tracker_resource.models import MetadataPair, OutRequest, OutResponse
from tracker_resource.tracker.client import ProjectClient

console = Console(stderr=True, soft_wrap=True, highlight=False)


def build_client(config: ResourceConfig) -> ProjectClient:
    return ProjectClient(config.token, config.project_id, base_url=config.tracker_url)


def _say(message: str) -> None:
    console.print(escape(message))


def _create(request: OutRequest, config: ResourceConfig, sources: Path) -> OutResponse:
    name = read_source_file(sources, request.params.content or "", "reading content file")
    with build_client(config) as client:
        story = create_story(client, name)
    _say(f"Story created with ID: {story.id} Name: {story.name}")
    return OutResponse(
        metadata=[
            MetadataPair(name="id", value=str(story.id)),
            MetadataPair(name="name", value=story.name),
        ]
    )


def _deliver(request: OutRequest, config: ResourceConfig, sources: Path) -> tuple[OutResponse, bool]:
    params = request.params
    comment = read_source_file(sources, params.comment or "", "reading comment file")
    repos = [Path(repo) for repo in params.repos]

    with build_client(config) as client:
        report = run_delivery(client, repos, comment, root=sources, options=delivery_options(params))

    for line in format_delivery_summary(report):
        _say(line)

    fatal = report.execution.fatal
    if fatal is not None:
        raise DeliveryAbortedError(fatal.story.id, fatal.error)

    response = OutResponse(
        metadata=[MetadataPair(name=name, value=value) for name, value in report.metadata()]
    )
    return response, report.success


def out_command(
    sources: Path = typer.Argument(..., help="Directory that request file and repository paths are relative to"),
) -> None:
    """Create a story from a content file, or deliver finished stories referenced by commits."""
    try:
        request = load_request(sys.stdin.read())
        config = resolve_config(request.source)
        workflow = select_workflow(request.params)
        if workflow is Workflow.CREATE:
            response, ok = _create(request, config, sources), True
        else:
            response, ok = _deliver(request, config, sources)
    except FatalError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    typer.echo(response.model_dump_json())
    if not ok:
        raise typer.Exit(1)
