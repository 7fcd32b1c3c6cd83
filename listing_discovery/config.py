from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
CATALOG_SNAPSHOT_PATH = Path(
    os.getenv("LISTING_CATALOG_PATH", str(DATA_DIR / "catalog_snapshot.json"))
)
STORAGE_DIR = Path(os.getenv("LISTING_STORAGE_DIR", str(DATA_DIR / "storage")))

LOG_DIR = PROJECT_ROOT / "logs"
LOG_TO_FILE = os.getenv("LISTING_LOG_TO_FILE", "0") == "1"


# ---------------------------
# Search settings
# ---------------------------

SEARCH_THRESHOLD = float(os.getenv("SEARCH_THRESHOLD", "0.3"))
SUGGEST_THRESHOLD = 0.4
SUGGEST_LIMIT = 5

MAX_QUERY_CHARS = 500  # input size cap for the HTTP surface

# Default fields searched over a CatalogItem
DEFAULT_SEARCH_KEYS: List[str] = ["title", "description", "sub_category", "keywords"]


# ---------------------------
# Local persistence (history / saved searches)
# ---------------------------

SEARCH_HISTORY_KEY = "commontable_search_history"
SAVED_SEARCHES_KEY = "commontable_saved_searches"
MAX_HISTORY = 50
MAX_SAVED_SEARCHES = 20


# ---------------------------
# Recommendation list sizes
# ---------------------------

SIMILAR_LIMIT = 6
TRENDING_LIMIT = 6
CATEGORY_LIMIT = 8
PERSONALIZED_LIMIT = 8


# ---------------------------
# Listing filter defaults
# ---------------------------

PRICE_FILTER_MIN = 0.0
PRICE_FILTER_MAX = 1000.0
ALL = "All"


# ---------------------------
# HTTP page source
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = 7.0
HTTP_USER_AGENT = "listing-discovery/1.0"
PAGE_SIZE = 20


# ---------------------------
# Weight structures
# ---------------------------

class SimilarityWeights(BaseModel):
    """Weights for "similar to this listing"."""

    category: float = 0.4
    sub_category: float = 0.3
    price: float = 0.2
    tags: float = 0.1
    max_score: float = 1.0
    min_score: float = 0.2  # strict: score must exceed this


class TrendingWeights(BaseModel):
    day_bonus: float = 0.5
    week_bonus: float = 0.3
    views_divisor: float = 100.0
    views_cap: float = 0.3
    bookmarks_divisor: float = 20.0
    bookmarks_cap: float = 0.2
    featured: float = 0.2
    min_score: float = 0.0


class CategoryWeights(BaseModel):
    base: float = 0.5
    images: float = 0.2
    featured: float = 0.2
    freshness: float = 0.1
    freshness_days: float = 30.0


class PersonalizationWeights(BaseModel):
    activity: Dict[str, float] = Field(
        default_factory=lambda: {"view": 1.0, "bookmark": 3.0, "message": 5.0, "purchase": 10.0}
    )
    decay_days: float = 30.0
    min_decay: float = 0.1

    category_divisor: float = 10.0
    category_cap: float = 0.3
    sub_category_divisor: float = 10.0
    sub_category_cap: float = 0.2
    price: float = 0.2
    tag_divisor: float = 20.0
    tag_cap: float = 0.2
    freshness: float = 0.1
    freshness_days: float = 30.0

    max_score: float = 1.0
    min_score: float = 0.1


class RecommendationWeights(BaseModel):
    """
    Every tunable constant used by the recommendation scorers.

    Tests and callers vary one field at a time, e.g.
    ``RecommendationWeights(similar=SimilarityWeights(price=0.0))``.
    """

    similar: SimilarityWeights = Field(default_factory=SimilarityWeights)
    trending: TrendingWeights = Field(default_factory=TrendingWeights)
    category: CategoryWeights = Field(default_factory=CategoryWeights)
    personalized: PersonalizationWeights = Field(default_factory=PersonalizationWeights)


DEFAULT_WEIGHTS = RecommendationWeights()


# ---------------------------
# Rate limiting
# ---------------------------

class RateLimitConfig(BaseModel):
    window_seconds: float = Field(gt=0)
    max_requests: int = Field(ge=0)


RATE_LIMIT_PRESETS: Dict[str, RateLimitConfig] = {
    "AUTH": RateLimitConfig(window_seconds=15 * 60, max_requests=5),
    "API": RateLimitConfig(window_seconds=60, max_requests=100),
    "PUBLIC": RateLimitConfig(window_seconds=60, max_requests=1000),
    "UPLOAD": RateLimitConfig(window_seconds=60, max_requests=10),
    "MESSAGING": RateLimitConfig(window_seconds=60, max_requests=60),
}

RATE_LIMIT_PRESET = os.getenv("RATE_LIMIT_PRESET", "PUBLIC").upper()
RATE_LIMIT_CLEANUP_EVERY = 100  # purge expired windows every N checks


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class CatalogItem(BaseModel):
    """
    A single marketplace listing as read from a catalog snapshot.

    Snapshots exported from the document store use camelCase keys; both
    spellings are accepted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str = ""
    description: str = ""
    category: str = ""
    sub_category: str = Field(default="", alias="subCategory")
    price: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    views: Optional[int] = None
    bookmarks: Optional[int] = None
    featured: bool = False
    author_id: str = Field(default="", alias="authorId")
    author_name: str = Field(default="", alias="authorName")
    images: List[str] = Field(default_factory=list)
    image_url: str = Field(default="", alias="imageUrl")
    location: str = ""
    condition: str = ""
    keywords: List[str] = Field(default_factory=list)

    @field_validator("id", "author_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("title", "description", "category", "sub_category",
                     "author_name", "image_url", "location", "condition", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _tag_ids(cls, v: Any) -> List[str]:
        # Tags arrive either as plain ids or as {id, name, color} objects.
        if v is None:
            return []
        if isinstance(v, (str, dict)):
            v = [v]
        out: List[str] = []
        for tag in v:
            tag_id = tag.get("id") if isinstance(tag, dict) else tag
            if tag_id is not None and str(tag_id) not in out:
                out.append(str(tag_id))
        return out

    @field_validator("images", "keywords", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v else []
        return [str(x) for x in v if x is not None]

    @field_validator("featured", mode="before")
    @classmethod
    def _featured_flag(cls, v: Any) -> bool:
        return bool(v) if v is not None else False


ActivityType = Literal["view", "bookmark", "message", "purchase"]


class UserActivity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing_id: str = Field(alias="listingId")
    type: ActivityType
    timestamp: datetime
    duration: Optional[float] = None  # seconds, for views

    @field_validator("listing_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)


class PriceRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class SearchFilters(BaseModel):
    """Filters stored alongside a saved search."""

    category: Optional[str] = None
    condition: Optional[str] = None
    price_range: Optional[PriceRange] = None
    location: Optional[str] = None


class SavedSearch(BaseModel):
    id: str
    name: str
    query: str
    filters: SearchFilters = Field(default_factory=SearchFilters)
    created_at: datetime
    last_used: datetime
    use_count: int = Field(default=1, ge=0)


DatePosted = Literal["all", "24h", "7d", "30d"]
SortOrder = Literal["newest", "oldest", "price-low", "price-high", "title"]


class ListingFilters(BaseModel):
    """Browse filters applied to a catalog snapshot."""

    search: str = ""
    price_min: float = PRICE_FILTER_MIN
    price_max: float = PRICE_FILTER_MAX
    location: str = ""
    category: str = ALL
    sub_category: str = ALL
    condition: str = ALL
    date_posted: DatePosted = "all"
    sort_by: SortOrder = "newest"


# ---------------------------
# API request / response bodies
# ---------------------------

class SearchRequest(BaseModel):
    query: str = Field(..., max_length=MAX_QUERY_CHARS)
    keys: List[str] = Field(default_factory=lambda: list(DEFAULT_SEARCH_KEYS))
    threshold: float = Field(default=SEARCH_THRESHOLD, ge=0.0, le=1.0)
    limit: Optional[int] = Field(default=None, ge=1)


class SearchHit(BaseModel):
    listing: CatalogItem
    score: float
    matched_fields: List[str]


class SearchResponse(BaseModel):
    results: List[SearchHit]
    total: int


class SuggestRequest(BaseModel):
    query: str = Field(..., max_length=MAX_QUERY_CHARS)
    limit: int = Field(default=SUGGEST_LIMIT, ge=1, le=50)


class SuggestResponse(BaseModel):
    suggestions: List[str]


class PersonalizedRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    history: List[UserActivity] = Field(default_factory=list)
    limit: int = Field(default=PERSONALIZED_LIMIT, ge=1, le=100)


class RecommendResponse(BaseModel):
    """
    Response body for every recommendation endpoint.
    """

    listings: List[CatalogItem]


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
    catalog_size: int = 0
