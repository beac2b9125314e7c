"""Filter, sort and paginate a directory listing.

Folders and files are merged into one sequence before sorting, so a page can
hold both kinds. Nothing here does I/O.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ...models.base import BaseEnum
from ..constants import DEFAULT_PAGE_SIZE
from ..exceptions import InvalidQuery
from .entities import DirectoryListing, FileEntry, FolderEntry, MediaItem


class SortKey(str, BaseEnum):
    NAME = "name"
    SIZE = "size"
    MODIFIED = "modified"
    TYPE = "type"


class SortDirection(str, BaseEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class MediaQuery:
    """Parameters of a listing query.

    ``file_types`` matches either a file category (``image``, ``document``...)
    or an exact mime type. Date bounds are inclusive, in milliseconds.
    """

    search: str | None = None
    file_types: set[str] = field(default_factory=set)
    date_from: int | None = None
    date_to: int | None = None
    favorites_only: bool = False
    tags: set[str] = field(default_factory=set)
    sort_key: SortKey = SortKey.NAME
    sort_dir: SortDirection = SortDirection.ASC
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass
class MediaPage:
    items: list[MediaItem]
    total_count: int
    total_pages: int
    page: int
    page_size: int


_SORT_KEYS: dict[SortKey, Callable[[MediaItem], Any]] = {
    SortKey.NAME: lambda item: item.name.casefold(),
    SortKey.SIZE: lambda item: item.size,
    SortKey.MODIFIED: lambda item: item.sort_time,
    SortKey.TYPE: lambda item: item.type_name,
}


def _matches_search(item: MediaItem, search: str | None) -> bool:
    if not search:
        return True
    needle = search.casefold()
    if needle in item.name.casefold():
        return True
    return isinstance(item, FolderEntry) and bool(
        item.display_name and needle in item.display_name.casefold()
    )


def _matches_file_filters(entry: FileEntry, query: MediaQuery) -> bool:
    if query.file_types and not (
        entry.category.value in query.file_types or entry.mime_type in query.file_types
    ):
        return False
    if query.date_from is not None and entry.created_at < query.date_from:
        return False
    if query.date_to is not None and entry.created_at > query.date_to:
        return False
    if query.favorites_only and not entry.favorited:
        return False
    if query.tags and not (entry.tags & query.tags):
        return False
    return True


def validate_query(query: MediaQuery) -> None:
    if query.page < 1:
        raise InvalidQuery(f"Page must be at least 1, got {query.page}")
    if query.page_size < 1:
        raise InvalidQuery(f"Page size must be at least 1, got {query.page_size}")
    if (
        query.date_from is not None
        and query.date_to is not None
        and query.date_from > query.date_to
    ):
        raise InvalidQuery("date_from must not be after date_to")


def sort_items(
    items: list[MediaItem], sort_key: SortKey, sort_dir: SortDirection
) -> list[MediaItem]:
    """Sort items, breaking ties by name ascending."""
    ordered = sorted(items, key=lambda item: (item.name.casefold(), item.name))
    # list.sort is stable, including with reverse=True, so ties keep name order
    ordered.sort(key=_SORT_KEYS[sort_key], reverse=sort_dir == SortDirection.DESC)
    return ordered


def apply_query(listing: DirectoryListing, query: MediaQuery) -> MediaPage:
    """Filter, merge, sort and slice a listing into one page."""
    validate_query(query)
    folders: list[MediaItem] = [
        f for f in listing.folders if _matches_search(f, query.search)
    ]
    files: list[MediaItem] = [
        f
        for f in listing.files
        if _matches_search(f, query.search) and _matches_file_filters(f, query)
    ]
    ordered = sort_items(folders + files, query.sort_key, query.sort_dir)

    total = len(ordered)
    start = (query.page - 1) * query.page_size
    return MediaPage(
        items=ordered[start : start + query.page_size],
        total_count=total,
        total_pages=math.ceil(total / query.page_size),
        page=query.page,
        page_size=query.page_size,
    )
