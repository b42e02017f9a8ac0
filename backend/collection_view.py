"""Filter-by-text and pagination over an ordered record set.

Records keep the order the backend returned them in. Every query, predicate
or record change recomputes the filtered set from scratch.
"""

import math
from typing import Callable, Generic, Sequence, TypeVar

from schemas import LinkRecord, ProjectRecord

PAGE_SIZE = 10

T = TypeVar("T")


class CollectionView(Generic[T]):
    """Searchable, paginated projection over `records`.

    `search_fields` returns the strings a query is matched against; a record
    matches when any of them contains the query case-insensitively.
    """

    def __init__(
        self,
        search_fields: Callable[[T], Sequence[str]],
        records: Sequence[T] = (),
        page_size: int = PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._search_fields = search_fields
        self._page_size = page_size
        self._records: list[T] = list(records)
        self._query = ""
        self._predicate: Callable[[T], bool] | None = None
        self._page = 1
        self._filtered: list[T] = list(self._records)

    @property
    def records(self) -> list[T]:
        return list(self._records)

    @property
    def query(self) -> str:
        return self._query

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def filtered(self) -> list[T]:
        return list(self._filtered)

    @property
    def filtered_count(self) -> int:
        return len(self._filtered)

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self._filtered) / self._page_size))

    def matches(self, record: T, query: str) -> bool:
        if not query.strip():
            return True
        needle = query.lower()
        return any(needle in (field or "").lower() for field in self._search_fields(record))

    def set_query(self, query: str) -> None:
        """Replace the query and go back to page 1."""
        self._query = query or ""
        self._page = 1
        self._recompute()

    def set_predicate(self, predicate: Callable[[T], bool] | None) -> None:
        """Restrict the view to records accepted by `predicate` (None shows all)."""
        self._predicate = predicate
        self._page = 1
        self._recompute()

    def replace(self, records: Sequence[T]) -> None:
        """Swap the whole record set, keeping query and (clamped) page."""
        self._records = list(records)
        self._recompute()

    def set_page(self, page: int) -> int:
        self._page = min(max(1, page), self.total_pages)
        return self._page

    def current_page(self) -> list[T]:
        start = (self._page - 1) * self._page_size
        return self._filtered[start : start + self._page_size]

    def has_previous(self) -> bool:
        return self._page > 1

    def has_next(self) -> bool:
        return self._page < self.total_pages

    def _recompute(self) -> None:
        self._filtered = [
            record
            for record in self._records
            if (self._predicate is None or self._predicate(record)) and self.matches(record, self._query)
        ]
        self.set_page(self._page)


def link_search_fields(link: LinkRecord) -> tuple[str, str]:
    return (link.url, link.title)


def project_search_fields(project: ProjectRecord) -> tuple[str, str]:
    return (project.project_name, project.domain)


def link_view(links: Sequence[LinkRecord] = (), page_size: int = PAGE_SIZE) -> CollectionView[LinkRecord]:
    return CollectionView(link_search_fields, links, page_size=page_size)


def project_view(
    projects: Sequence[ProjectRecord] = (), page_size: int = PAGE_SIZE
) -> CollectionView[ProjectRecord]:
    return CollectionView(project_search_fields, projects, page_size=page_size)
