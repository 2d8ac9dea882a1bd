"""Pydantic models for the resource's stdin request and stdout response."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Source(BaseModel):
    """Tracker connection parameters from the pipeline's resource definition."""

    tracker_url: str = ""
    token: str = ""
    project_id: str | int = ""


class Params(BaseModel):
    """Per-invocation parameters; which file is set selects the workflow."""

    content: str | None = None
    comment: str | None = None
    repos: list[str] = Field(default_factory=list)
    since: str | None = None
    max_commits: int | None = Field(default=None, ge=1)


class OutRequest(BaseModel):
    source: Source = Field(default_factory=Source)
    params: Params = Field(default_factory=Params)


class Version(BaseModel):
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MetadataPair(BaseModel):
    name: str
    value: str


class OutResponse(BaseModel):
    version: Version = Field(default_factory=Version)
    metadata: list[MetadataPair] = Field(default_factory=list)
