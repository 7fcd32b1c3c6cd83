from __future__ import annotations

"""
Recommendation lists for the marketplace.

Four rankers over an in-memory catalog snapshot:

* similar listings to a given one
* trending listings (recency + engagement)
* top listings of a category
* personalised picks from a user's activity history

Every ranker is a pure function of its arguments plus ``now``: the catalog and
history are never mutated, and all weights come from ``RecommendationWeights``.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import (
    CATEGORY_LIMIT,
    DEFAULT_WEIGHTS,
    PERSONALIZED_LIMIT,
    SIMILAR_LIMIT,
    TRENDING_LIMIT,
    CatalogItem,
    RecommendationWeights,
    UserActivity,
)

_SECONDS_PER_DAY = 24 * 60 * 60


# -----------------------
# Time helpers
# -----------------------

def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _resolve_now(now: Optional[datetime]) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(timezone.utc)


def days_since(ts: datetime, now: datetime) -> float:
    return (_as_utc(now) - _as_utc(ts)).total_seconds() / _SECONDS_PER_DAY


def _freshness(created_at: datetime, now: datetime, window_days: float) -> float:
    return max(0.0, 1.0 - days_since(created_at, now) / window_days)


def _rank(
    catalog: Iterable[CatalogItem],
    score_fn: Callable[[CatalogItem], float],
    limit: int,
    min_score: Optional[float],
) -> List[CatalogItem]:
    """Score, drop scores not above ``min_score``, stable-sort desc, dedupe ids, cut."""
    scored: List[Tuple[CatalogItem, float]] = []
    for item in catalog:
        s = score_fn(item)
        if min_score is not None and not s > min_score:
            continue
        scored.append((item, s))

    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)

    out: List[CatalogItem] = []
    seen: set[str] = set()
    for item, _ in scored:
        if len(out) >= limit:
            break
        if item.id in seen:
            continue
        seen.add(item.id)
        out.append(item)
    return out


def _user_id(user: Any) -> str:
    if isinstance(user, str):
        return user
    if isinstance(user, dict):
        return str(user.get("id", ""))
    return str(getattr(user, "id", ""))


# -----------------------
# Similar items
# -----------------------

def similarity_between(subject: CatalogItem, other: CatalogItem,
                       weights: RecommendationWeights = DEFAULT_WEIGHTS) -> float:
    w = weights.similar
    score = 0.0

    if subject.category == other.category:
        score += w.category

    if subject.sub_category == other.sub_category:
        score += w.sub_category

    # zero prices count as "no price"
    if subject.price and other.price:
        diff = abs(subject.price - other.price)
        avg = (subject.price + other.price) / 2
        score += max(0.0, 1.0 - diff / avg) * w.price

    if subject.tags and other.tags:
        a, b = set(subject.tags), set(other.tags)
        union = a | b
        if union:
            score += len(a & b) / len(union) * w.tags

    return min(score, w.max_score)


def get_similar_items(
    subject: CatalogItem,
    catalog: Sequence[CatalogItem],
    limit: int = SIMILAR_LIMIT,
    weights: RecommendationWeights = DEFAULT_WEIGHTS,
) -> List[CatalogItem]:
    """Listings like ``subject``, never the subject itself or anything by its author."""
    candidates = (
        item for item in catalog
        if item.id != subject.id and item.author_id != subject.author_id
    )
    out = _rank(
        candidates,
        lambda item: similarity_between(subject, item, weights),
        limit,
        weights.similar.min_score,
    )
    logger.debug("similar to {}: {} listings", subject.id, len(out))
    return out


# -----------------------
# Trending
# -----------------------

def trending_score(item: CatalogItem, now: datetime,
                   weights: RecommendationWeights = DEFAULT_WEIGHTS) -> float:
    w = weights.trending
    score = 0.0
    now = _as_utc(now)
    created = _as_utc(item.created_at)

    if created > now - timedelta(days=1):
        score += w.day_bonus
    elif created > now - timedelta(days=7):
        score += w.week_bonus

    if item.views:
        score += min(item.views / w.views_divisor, w.views_cap)
    if item.bookmarks:
        score += min(item.bookmarks / w.bookmarks_divisor, w.bookmarks_cap)
    if item.featured:
        score += w.featured

    return score


def get_trending_items(
    catalog: Sequence[CatalogItem],
    limit: int = TRENDING_LIMIT,
    now: Optional[datetime] = None,
    weights: RecommendationWeights = DEFAULT_WEIGHTS,
) -> List[CatalogItem]:
    now = _resolve_now(now)
    return _rank(catalog, lambda item: trending_score(item, now, weights), limit, weights.trending.min_score)


# -----------------------
# Category
# -----------------------

def category_score(item: CatalogItem, now: datetime,
                   weights: RecommendationWeights = DEFAULT_WEIGHTS) -> float:
    w = weights.category
    score = w.base
    if item.images:
        score += w.images
    if item.featured:
        score += w.featured
    score += _freshness(item.created_at, now, w.freshness_days) * w.freshness
    return score


def get_recommendations_for_category(
    category: str,
    catalog: Sequence[CatalogItem],
    limit: int = CATEGORY_LIMIT,
    now: Optional[datetime] = None,
    weights: RecommendationWeights = DEFAULT_WEIGHTS,
) -> List[CatalogItem]:
    """Top listings in ``category``. Unlike the other rankers there is no score floor."""
    now = _resolve_now(now)
    in_category = (item for item in catalog if item.category == category)
    return _rank(in_category, lambda item: category_score(item, now, weights), limit, None)


# -----------------------
# Personalised
# -----------------------

@dataclass
class UserPreferences:
    categories: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    sub_categories: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    tags: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    prices: List[float] = field(default_factory=list)

    @property
    def average_price(self) -> Optional[float]:
        if not self.prices:
            return None
        return float(np.mean(self.prices))


def activity_weight(activity: UserActivity, now: datetime,
                    weights: RecommendationWeights = DEFAULT_WEIGHTS) -> float:
    w = weights.personalized
    base = w.activity.get(activity.type, 0.0)
    decay = max(w.min_decay, 1.0 - days_since(activity.timestamp, now) / w.decay_days)
    return base * decay


def analyze_user_preferences(
    history: Sequence[UserActivity],
    catalog: Sequence[CatalogItem],
    now: Optional[datetime] = None,
    weights: RecommendationWeights = DEFAULT_WEIGHTS,
) -> UserPreferences:
    """Accumulate decayed activity weights per category, sub-category and tag."""
    now = _resolve_now(now)
    by_id = {item.id: item for item in catalog}
    prefs = UserPreferences()

    for activity in history:
        listing = by_id.get(activity.listing_id)
        if listing is None:
            continue
        weight = activity_weight(activity, now, weights)
        prefs.categories[listing.category] += weight
        prefs.sub_categories[listing.sub_category] += weight
        if listing.price:
            prefs.prices.append(listing.price)
        for tag in listing.tags:
            prefs.tags[tag] += weight

    return prefs


def personalization_score(item: CatalogItem, prefs: UserPreferences, now: datetime,
                          weights: RecommendationWeights = DEFAULT_WEIGHTS) -> float:
    w = weights.personalized
    score = 0.0

    score += min(prefs.categories.get(item.category, 0.0) / w.category_divisor, w.category_cap)
    score += min(prefs.sub_categories.get(item.sub_category, 0.0) / w.sub_category_divisor,
                 w.sub_category_cap)

    avg_price = prefs.average_price
    if item.price and avg_price:
        score += max(0.0, 1.0 - abs(item.price - avg_price) / avg_price) * w.price

    if item.tags:
        tag_total = sum(prefs.tags.get(tag, 0.0) for tag in item.tags)
        score += min(tag_total / w.tag_divisor, w.tag_cap)

    score += _freshness(item.created_at, now, w.freshness_days) * w.freshness
    return min(score, w.max_score)


def get_personalized_recommendations(
    user: Any,
    history: Sequence[UserActivity],
    catalog: Sequence[CatalogItem],
    limit: int = PERSONALIZED_LIMIT,
    now: Optional[datetime] = None,
    weights: RecommendationWeights = DEFAULT_WEIGHTS,
) -> List[CatalogItem]:
    """
    Picks for ``user`` (an id, a mapping or an object with ``.id``) based on
    their ``history``. Own listings and already-seen listings are excluded.
    """
    now = _resolve_now(now)
    user_id = _user_id(user)
    prefs = analyze_user_preferences(history, catalog, now, weights)
    seen = {activity.listing_id for activity in history}

    candidates = (
        item for item in catalog
        if item.author_id != user_id and item.id not in seen
    )
    out = _rank(
        candidates,
        lambda item: personalization_score(item, prefs, now, weights),
        limit,
        weights.personalized.min_score,
    )
    logger.debug("personalised for {}: {} listings from {} activities", user_id, len(out), len(history))
    return out


class RecommendationEngine:
    """Holds a weight configuration and forwards to the module-level rankers."""

    def __init__(self, weights: RecommendationWeights = DEFAULT_WEIGHTS,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.weights = weights
        self.clock = clock

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock is not None else None

    def similar(self, subject: CatalogItem, catalog: Sequence[CatalogItem],
                limit: int = SIMILAR_LIMIT) -> List[CatalogItem]:
        return get_similar_items(subject, catalog, limit, self.weights)

    def trending(self, catalog: Sequence[CatalogItem], limit: int = TRENDING_LIMIT) -> List[CatalogItem]:
        return get_trending_items(catalog, limit, self._now(), self.weights)

    def for_category(self, category: str, catalog: Sequence[CatalogItem],
                     limit: int = CATEGORY_LIMIT) -> List[CatalogItem]:
        return get_recommendations_for_category(category, catalog, limit, self._now(), self.weights)

    def personalized(self, user: Any, history: Sequence[UserActivity],
                     catalog: Sequence[CatalogItem], limit: int = PERSONALIZED_LIMIT) -> List[CatalogItem]:
        return get_personalized_recommendations(user, history, catalog, limit, self._now(), self.weights)
