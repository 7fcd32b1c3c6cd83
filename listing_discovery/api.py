from __future__ import annotations

"""
FastAPI application exposing listing search and recommendations.

- Catalog snapshot loaded once at startup (``LISTING_CATALOG_PATH``)
- Every route is rate limited per client with the ``RATE_LIMIT_PRESET`` window
- Handlers are thin: all ranking lives in ``search`` / ``recommend``
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .catalog_build import load_catalog_snapshot
from .config import (
    CATALOG_SNAPSHOT_PATH,
    CATEGORY_LIMIT,
    LOG_DIR,
    LOG_TO_FILE,
    RATE_LIMIT_PRESET,
    SIMILAR_LIMIT,
    TRENDING_LIMIT,
    CatalogItem,
    HealthResponse,
    PersonalizedRequest,
    RecommendResponse,
    SearchHit,
    SearchRequest,
    SearchResponse,
    SuggestRequest,
    SuggestResponse,
)
from .rate_limit import RateLimiter, client_key, limiter_for
from .recommend import RecommendationEngine, _as_utc
from .search import search, suggest

app = FastAPI(title="listing-discovery")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_catalog: Optional[List[CatalogItem]] = None
_by_id: Dict[str, CatalogItem] = {}
engine = RecommendationEngine()
rate_limiter: RateLimiter = limiter_for(RATE_LIMIT_PRESET)


def set_catalog(items: List[CatalogItem]) -> None:
    global _catalog, _by_id
    _catalog = list(items)
    _by_id = {item.id: item for item in _catalog}


def _require_catalog() -> List[CatalogItem]:
    if _catalog is None:
        raise HTTPException(status_code=500, detail="Catalog not loaded")
    return _catalog


def _suggestion_pool(catalog: List[CatalogItem]) -> List[str]:
    """Distinct listing titles, newest first."""
    seen = set()
    pool: List[str] = []
    newest = sorted(catalog, key=lambda i: _as_utc(i.created_at), reverse=True)
    for item in newest:
        title = item.title.strip()
        if title and title.lower() not in seen:
            seen.add(title.lower())
            pool.append(title)
    return pool


@app.on_event("startup")
def startup_event() -> None:
    if LOG_TO_FILE:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        logger.add(LOG_DIR / "api.log", rotation="10 MB", retention=5)
    if _catalog is not None:
        logger.info("Catalog already set with {} listings; skipping snapshot load", len(_catalog))
        return
    try:
        set_catalog(load_catalog_snapshot(CATALOG_SNAPSHOT_PATH))
    except (FileNotFoundError, ValueError) as e:
        logger.warning("Catalog snapshot unavailable ({}); serving without a catalog", e)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    key = client_key(request.headers, request.client.host if request.client else None, request.url.path)
    result = rate_limiter.check(key)
    if result.limited:
        now = datetime.now(timezone.utc).timestamp()
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too many requests",
                "message": "Rate limit exceeded. Please try again later.",
                "retryAfter": result.retry_after(now),
            },
            headers=result.headers(now),
        )
    response = await call_next(request)
    for name, value in result.headers().items():
        response.headers[name] = value
    return response


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy", catalog_size=len(_catalog or []))


@app.post("/search", response_model=SearchResponse)
def search_listings(req: SearchRequest) -> SearchResponse:
    catalog = _require_catalog()
    unknown = [k for k in req.keys if k not in CatalogItem.model_fields]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown search fields: {unknown}")
    results = search(catalog, req.query, req.keys, threshold=req.threshold, limit=req.limit)
    hits = [SearchHit(listing=r.item, score=r.score, matched_fields=r.matched_fields) for r in results]
    return SearchResponse(results=hits, total=len(hits))


@app.post("/suggest", response_model=SuggestResponse)
def suggest_titles(req: SuggestRequest) -> SuggestResponse:
    catalog = _require_catalog()
    return SuggestResponse(suggestions=suggest(req.query, _suggestion_pool(catalog), req.limit))


@app.get("/listings/{listing_id}/similar", response_model=RecommendResponse)
def similar_listings(listing_id: str, limit: int = SIMILAR_LIMIT) -> RecommendResponse:
    catalog = _require_catalog()
    subject = _by_id.get(listing_id)
    if subject is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")
    return RecommendResponse(listings=engine.similar(subject, catalog, limit))


@app.get("/trending", response_model=RecommendResponse)
def trending(limit: int = TRENDING_LIMIT) -> RecommendResponse:
    return RecommendResponse(listings=engine.trending(_require_catalog(), limit))


@app.get("/categories/{category}", response_model=RecommendResponse)
def category_listings(category: str, limit: int = CATEGORY_LIMIT) -> RecommendResponse:
    return RecommendResponse(listings=engine.for_category(category, _require_catalog(), limit))


@app.post("/recommendations/personalized", response_model=RecommendResponse)
def personalized(req: PersonalizedRequest) -> RecommendResponse:
    catalog = _require_catalog()
    listings = engine.personalized(req.user_id, req.history, catalog, req.limit)
    return RecommendResponse(listings=listings)
