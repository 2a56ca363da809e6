"""
Offset pagination for list endpoints.

Page parameters arrive as a loose mapping (query string values or ints):
- "page": 1-based page number, default 1
- "page_size": default 24, capped at MAX_PAGE_SIZE

Invalid or out-of-range values fall back to the defaults instead of failing.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Mapping, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.sql import Select
from sqlmodel import Session, select

from sitehub.utils.sql import scalar_int

DEFAULT_PAGE_SIZE = 24
MAX_PAGE_SIZE = 100

T = TypeVar("T")


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    return parsed if parsed >= 1 else None


@dataclass(frozen=True)
class PageParams:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> "PageParams":
        params = params or {}
        page = _positive_int(params.get("page")) or 1
        page_size = _positive_int(params.get("page_size")) or DEFAULT_PAGE_SIZE
        return cls(page=page, page_size=min(page_size, MAX_PAGE_SIZE))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class Page(Generic[T]):
    entries: List[T] = field(default_factory=list)
    page_number: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total_entries: int = 0
    total_pages: int = 1


def total_pages_for(total_entries: int, page_size: int) -> int:
    """Number of pages; an empty result still has one (empty) page."""
    return max(1, math.ceil(total_entries / page_size))


def paginate(
    session: Session,
    query: Select,
    params: PageParams,
    build_entries: Callable[[list], List[T]],
) -> Page[T]:
    """
    Run `query` with LIMIT/OFFSET for the requested page.

    The total is counted over the same query wrapped in a subquery, so ordering
    and filters are applied identically to the count and to the page. An
    offset at or beyond the total returns an empty page.
    `build_entries` turns the fetched rows into the page's entries.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total_entries = scalar_int(session.exec(count_query).one())

    # Pages past the end are answered without a query; their offset may not
    # even fit in a database integer
    if params.offset >= total_entries:
        rows = []
    else:
        rows = session.exec(query.offset(params.offset).limit(params.page_size)).all()

    return Page(
        entries=build_entries(list(rows)),
        page_number=params.page,
        page_size=params.page_size,
        total_entries=total_entries,
        total_pages=total_pages_for(total_entries, params.page_size),
    )
