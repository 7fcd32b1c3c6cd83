from __future__ import annotations

"""
Browse filters for a catalog snapshot, plus the human-readable summary shown
next to a saved search.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from .config import (
    ALL,
    PRICE_FILTER_MAX,
    PRICE_FILTER_MIN,
    CatalogItem,
    ListingFilters,
    SearchFilters,
)

_DATE_WINDOWS: Dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def _utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def _matches_text(item: CatalogItem, needle: str) -> bool:
    haystacks = (item.title, item.description, item.author_name, item.sub_category)
    return any(needle in h.lower() for h in haystacks)


def apply_filters(
    items: Sequence[CatalogItem],
    filters: ListingFilters,
    now: Optional[datetime] = None,
) -> List[CatalogItem]:
    """Return a new, filtered and sorted list; ``items`` is left untouched."""
    out = list(items)

    if filters.search:
        needle = filters.search.lower()
        out = [i for i in out if _matches_text(i, needle)]

    if filters.price_min > PRICE_FILTER_MIN or filters.price_max < PRICE_FILTER_MAX:
        out = [i for i in out if filters.price_min <= (i.price or 0) <= filters.price_max]

    if filters.location:
        loc = filters.location.lower()
        out = [i for i in out if loc in i.location.lower()]

    if filters.category != ALL:
        out = [i for i in out if i.category == filters.category]
    if filters.sub_category != ALL:
        out = [i for i in out if i.sub_category == filters.sub_category]
    if filters.condition != ALL:
        out = [i for i in out if i.condition == filters.condition]

    window = _DATE_WINDOWS.get(filters.date_posted)
    if window is not None:
        now = _utc(now) if now is not None else datetime.now(timezone.utc)
        cutoff = now - window
        out = [i for i in out if _utc(i.created_at) >= cutoff]

    return sort_listings(out, filters.sort_by)


def sort_listings(items: Sequence[CatalogItem], sort_by: str) -> List[CatalogItem]:
    if sort_by == "newest":
        return sorted(items, key=lambda i: _utc(i.created_at), reverse=True)
    if sort_by == "oldest":
        return sorted(items, key=lambda i: _utc(i.created_at))
    if sort_by == "price-low":
        return sorted(items, key=lambda i: i.price or 0)
    if sort_by == "price-high":
        return sorted(items, key=lambda i: i.price or 0, reverse=True)
    if sort_by == "title":
        return sorted(items, key=lambda i: i.title.lower())
    return list(items)


def has_active_filters(filters: ListingFilters) -> bool:
    return filters != ListingFilters(sort_by=filters.sort_by)


def _fmt_price(value: float) -> str:
    return f"${value:g}"


def filter_summary(filters: SearchFilters) -> List[str]:
    """Short labels for the non-empty filters of a saved search."""
    out: List[str] = []
    for key, value in filters:
        if value is None or value == "":
            continue
        if key == "price_range":
            lo, hi = value.min, value.max
            if lo and hi:
                out.append(f"{_fmt_price(lo)}-{_fmt_price(hi)}")
            elif lo:
                out.append(f"{_fmt_price(lo)}+")
            elif hi:
                out.append(f"Under {_fmt_price(hi)}")
            continue
        out.append(f"{key}: {value}")
    return out
