from __future__ import annotations

"""
Paging over listings.

* ``paginate`` slices an in-memory list into numbered pages.
* ``IncrementalLoader`` accumulates pages from a ``fetch_more(page, limit)``
  callable ("load more" / infinite scroll), de-duplicating as it goes.
* ``HttpPageSource`` is a ``fetch_more`` that reads pages from a listings
  endpoint over HTTP.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

import httpx
from loguru import logger

from .config import HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT, HTTP_USER_AGENT, PAGE_SIZE

T = TypeVar("T")


# -----------------------
# Static pages
# -----------------------

@dataclass
class Page(Generic[T]):
    items: List[T]
    page: int
    per_page: int
    total_items: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def start_index(self) -> int:
        """1-based index of the first item on this page; 0 when there are no items."""
        if self.total_items == 0:
            return 0
        return (self.page - 1) * self.per_page + 1

    @property
    def end_index(self) -> int:
        return min(self.page * self.per_page, self.total_items)


def paginate(items: Sequence[T], page: int = 1, per_page: int = 10) -> Page[T]:
    """Page ``page`` of ``items``; out-of-range page numbers are clamped."""
    if per_page < 1:
        raise ValueError("per_page must be >= 1")
    total_items = len(items)
    total_pages = math.ceil(total_items / per_page)
    page = max(1, min(page, total_pages)) if total_pages else 1
    start = (page - 1) * per_page
    return Page(
        items=list(items[start:start + per_page]),
        page=page,
        per_page=per_page,
        total_items=total_items,
        total_pages=total_pages,
    )


# -----------------------
# Incremental loading
# -----------------------

@dataclass
class PageResult(Generic[T]):
    data: List[T]
    has_more: bool
    total: Optional[int] = None


FetchFn = Callable[[int, int], PageResult]
SearchFn = Callable[[str, int, int], PageResult]


def item_identity(item: Any) -> str:
    """``id`` when the item has one, otherwise its JSON form."""
    item_id = item.get("id") if isinstance(item, dict) else getattr(item, "id", None)
    if item_id:
        return str(item_id)
    if hasattr(item, "model_dump_json"):
        return item.model_dump_json()
    return json.dumps(item, sort_keys=True, default=str)


@dataclass
class IncrementalLoader(Generic[T]):
    """
    Accumulates pages from ``fetch_more`` until the source reports no more.

    A failed fetch is stored in ``error`` (and passed to ``on_error``); the
    loader keeps its data and can be retried with ``load_more``.
    """

    fetch_more: FetchFn
    limit: int = PAGE_SIZE
    search_fn: Optional[SearchFn] = None
    on_error: Optional[Callable[[Exception], None]] = None
    initial_data: List[T] = field(default_factory=list)

    data: List[T] = field(init=False)
    page: int = field(init=False, default=1)
    has_more: bool = field(init=False, default=True)
    total: Optional[int] = field(init=False, default=None)
    error: Optional[Exception] = field(init=False, default=None)
    query: str = field(init=False, default="")
    is_loading: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self.data = list(self.initial_data)

    def _fetch(self, page: int) -> PageResult:
        if self.query and self.search_fn is not None:
            return self.search_fn(self.query, page, self.limit)
        return self.fetch_more(page, self.limit)

    def load_more(self) -> List[T]:
        """Fetch the next page; returns the items that were actually new."""
        if self.is_loading or not self.has_more:
            return []

        self.is_loading = True
        self.error = None
        try:
            result = self._fetch(self.page)
        except Exception as e:
            logger.warning("Loading page {} failed: {}", self.page, e)
            self.error = e
            if self.on_error is not None:
                self.on_error(e)
            return []
        finally:
            self.is_loading = False

        existing = {item_identity(item) for item in self.data}
        new_items: List[T] = []
        for item in result.data:
            ident = item_identity(item)
            if ident not in existing:
                existing.add(ident)
                new_items.append(item)

        self.data.extend(new_items)
        self.has_more = result.has_more
        self.page += 1
        if result.total is not None:
            self.total = result.total
        return new_items

    def refresh(self) -> None:
        """Drop everything and start again from page 1."""
        self.data = []
        self._restart()

    def reset(self) -> None:
        """Back to ``initial_data`` and page 1."""
        self.data = list(self.initial_data)
        self._restart()

    def set_query(self, query: str) -> None:
        query = (query or "").strip()
        if query != self.query:
            self.query = query
            self.refresh()

    def _restart(self) -> None:
        self.page = 1
        self.has_more = True
        self.total = None
        self.error = None
        self.is_loading = False


class HttpPageSource:
    """
    ``fetch_more`` / ``search_fn`` backed by ``GET {base_url}/listings``.

    The endpoint is expected to answer ``{"data": [...], "hasMore": bool,
    "total": int}`` for ``?page=&limit=`` (and ``&q=`` when searching).
    """

    def __init__(self, base_url: str, client: Optional[httpx.Client] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
            headers={"User-Agent": HTTP_USER_AGENT},
        )

    def _get(self, params: dict) -> PageResult:
        r = self.client.get(f"{self.base_url}/listings", params=params)
        r.raise_for_status()
        body = r.json()
        return PageResult(
            data=list(body.get("data") or []),
            has_more=bool(body.get("hasMore", False)),
            total=body.get("total"),
        )

    def __call__(self, page: int, limit: int) -> PageResult:
        return self._get({"page": page, "limit": limit})

    def search(self, query: str, page: int, limit: int) -> PageResult:
        return self._get({"q": query, "page": page, "limit": limit})

    def close(self) -> None:
        self.client.close()
