from __future__ import annotations

"""
Fuzzy multi-field search over in-memory records.

- ``search`` scores each record by its best-matching field and returns a
  ranked, thresholded, capped list of ``ScoredResult``.
- ``suggest`` ranks a flat list of phrases for autocomplete.
- ``highlight_matches`` marks query occurrences for display.
- ``SearchSession`` ties the three to a search history.

Everything here is synchronous and never mutates the records it is given.
"""

import re
from collections.abc import Mapping
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar, Union

from loguru import logger

from .config import SEARCH_THRESHOLD, SUGGEST_LIMIT, SUGGEST_THRESHOLD
from .history import SearchHistory
from .normalize import coerce_text, normalize_for_match
from .search_types import ScoredResult
from .similarity import similarity_score

T = TypeVar("T")

FieldExtractor = Union[str, Callable[[Any], Any], Tuple[str, Callable[[Any], Any]]]


# -----------------------
# Field extraction
# -----------------------

def _field_label(key: FieldExtractor) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, tuple):
        return key[0]
    return getattr(key, "__name__", repr(key))


def extract_field(item: Any, key: FieldExtractor) -> str:
    """Text of one field; missing attributes and ``None`` give ``""``."""
    if isinstance(key, tuple):
        key = key[1]
    if callable(key):
        value = key(item)
    elif isinstance(item, Mapping):
        value = item.get(key)
    else:
        value = getattr(item, key, None)
    return coerce_text(value)


# -----------------------
# Search
# -----------------------

def search(
    items: Sequence[T],
    query: str,
    keys: Sequence[FieldExtractor],
    threshold: float = SEARCH_THRESHOLD,
    limit: Optional[int] = None,
    sort_by_score: bool = True,
) -> List[ScoredResult[T]]:
    """
    Rank ``items`` against ``query`` using the best score over ``keys``.

    An empty or whitespace-only query is "no filter": every item comes back
    with score 1.0 in input order. Otherwise only items whose best field
    scores at least ``threshold`` are kept; ties keep their input order.
    """
    if not coerce_text(query).strip():
        return [ScoredResult(item=item, score=1.0) for item in items]

    results: List[ScoredResult[T]] = []
    for item in items:
        max_score = 0.0
        matched_fields: List[str] = []
        matches: List[str] = []

        for key in keys:
            text = extract_field(item, key)
            score = similarity_score(query, text)
            if score > max_score:
                max_score = score
            if score >= threshold:
                label = _field_label(key)
                if label not in matched_fields:
                    matched_fields.append(label)
                if text not in matches:
                    matches.append(text)

        if max_score >= threshold:
            results.append(
                ScoredResult(item=item, score=max_score, matched_fields=matched_fields, matches=matches)
            )

    if sort_by_score:
        # sorted() is stable, so equal scores keep input order
        results = sorted(results, key=lambda r: r.score, reverse=True)

    if limit is not None:
        results = results[: max(0, limit)]

    logger.debug("search {!r}: {} of {} items matched", query, len(results), len(items))
    return results


def suggest(query: str, candidates: Sequence[str], limit: int = SUGGEST_LIMIT) -> List[str]:
    """Autocomplete phrases for ``query``; duplicates in ``candidates`` are kept."""
    if not coerce_text(query).strip():
        return list(candidates[:limit])

    ranked = search(
        list(candidates),
        query,
        keys=[("text", coerce_text)],
        threshold=SUGGEST_THRESHOLD,
        limit=limit,
        sort_by_score=True,
    )
    return [r.item for r in ranked]


def highlight_matches(text: str, query: str) -> str:
    """Wrap occurrences of ``query`` in ``<mark>`` when ``text`` contains it."""
    text = coerce_text(text)
    if not coerce_text(query).strip():
        return text

    if normalize_for_match(query) not in normalize_for_match(text):
        return text

    pattern = re.compile(f"({re.escape(query)})", flags=re.IGNORECASE)
    return pattern.sub(r"<mark>\1</mark>", text)


# -----------------------
# Session
# -----------------------

class SearchSession:
    """
    Search state for one browsing session.

    ``run`` ranks the catalog and records the query in history; ``suggestions``
    mixes the popular phrases with the user's own history.
    """

    def __init__(
        self,
        items: Sequence[Any],
        keys: Sequence[FieldExtractor],
        history: Optional[SearchHistory] = None,
        popular: Optional[Sequence[str]] = None,
        threshold: float = SEARCH_THRESHOLD,
    ) -> None:
        self.items = items
        self.keys = list(keys)
        self.history = history
        self.popular = list(popular or [])
        self.threshold = threshold
        self.query = ""

    def run(self, query: str, limit: Optional[int] = None) -> List[ScoredResult[Any]]:
        self.query = coerce_text(query)
        if self.history is not None and self.query.strip():
            self.history.add(self.query)
        return search(self.items, self.query, self.keys, threshold=self.threshold, limit=limit)

    def suggestions(self, query: str, limit: int = SUGGEST_LIMIT) -> List[str]:
        if not coerce_text(query).strip():
            return []
        pool = self.popular + (self.history.entries() if self.history is not None else [])
        return suggest(query, pool, limit)

    def highlight(self, text: str) -> str:
        return highlight_matches(text, self.query)

    def clear(self) -> None:
        self.query = ""

    @property
    def has_query(self) -> bool:
        return bool(self.query.strip())
