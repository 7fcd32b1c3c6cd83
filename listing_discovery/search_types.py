"""Typed containers shared by the search helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

T = TypeVar("T")


@dataclass
class ScoredResult(Generic[T]):
    """A caller record wrapped with its best field score for one query."""

    item: T
    score: float
    matched_fields: List[str] = field(default_factory=list)
    matches: List[str] = field(default_factory=list)
