"""Offset/limit page collection with a safety bound."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from tracker_resource.tracker.models import Page

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 50


@dataclass
class Collected(Generic[T]):
    """Items gathered from consecutive pages.

    ``complete`` is False when the page bound stopped the loop before the
    tracker reported the end of the listing.
    """

    items: list[T] = field(default_factory=list)
    pages: int = 0
    total: int | None = None
    complete: bool = True


def collect_pages(
    fetch_page: Callable[[int, int], Page[T]],
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> Collected[T]:
    """Call ``fetch_page(limit, offset)`` until the listing is exhausted.

    Items are concatenated in the order the tracker returned them. Errors
    raised by ``fetch_page`` propagate unchanged.
    """
    if page_size < 1:
        raise ValueError("page_size must be positive")
    if max_pages < 1:
        raise ValueError("max_pages must be positive")

    collected: Collected[T] = Collected()
    offset = 0
    while True:
        page = fetch_page(page_size, offset)
        collected.items.extend(page.items)
        collected.pages += 1
        collected.total = page.pagination.total

        if not page.pagination.has_more():
            return collected
        if collected.pages >= max_pages:
            collected.complete = False
            return collected
        offset = page.pagination.next_offset
