from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from listing_discovery import api
from listing_discovery.config import CatalogItem, RateLimitConfig
from listing_discovery.rate_limit import RateLimiter


client = TestClient(api.app)

NOW = datetime.now(timezone.utc)


def dummy_catalog():
    return [
        CatalogItem(id="1", title="Gaming Chair", description="Ergonomic", category="Sell",
                    sub_category="Furniture", price=120, author_id="a", views=300,
                    created_at=NOW - timedelta(hours=2)),
        CatalogItem(id="2", title="Office Desk", description="Oak desk", category="Sell",
                    sub_category="Furniture", price=150, author_id="b",
                    created_at=NOW - timedelta(days=2)),
        CatalogItem(id="3", title="Chair Mat", description="Clear mat", category="Give",
                    sub_category="Furniture", author_id="c", images=["mat.jpg"],
                    created_at=NOW - timedelta(days=5)),
    ]


@pytest.fixture(autouse=True)
def catalog(monkeypatch):
    monkeypatch.setattr(api, "rate_limiter", RateLimiter(RateLimitConfig(window_seconds=60, max_requests=1000)))
    monkeypatch.setattr(api, "_catalog", None)
    monkeypatch.setattr(api, "_by_id", {})
    api.set_catalog(dummy_catalog())


def test_health_endpoint():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "catalog_size": 3}
    assert resp.headers["X-RateLimit-Limit"] == "1000"


def test_search_blank_query_returns_whole_catalog():
    resp = client.post("/search", json={"query": " "})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert [h["listing"]["id"] for h in data["results"]] == ["1", "2", "3"]
    assert all(h["score"] == 1.0 and h["matched_fields"] == [] for h in data["results"])


def test_search_rejects_unknown_fields():
    resp = client.post("/search", json={"query": "chair", "keys": ["title", "password"]})
    assert resp.status_code == 422


def test_search_returns_ranked_hits():
    resp = client.post("/search", json={"query": "chair", "keys": ["title"]})
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 2
    assert [h["listing"]["id"] for h in data["results"]] == ["1", "3"]
    hit = data["results"][0]
    assert hit["score"] == 1.0
    assert hit["matched_fields"] == ["title"]
    assert hit["listing"]["subCategory"] == "Furniture"


def test_suggest_uses_listing_titles():
    resp = client.post("/suggest", json={"query": "chair"})
    assert resp.status_code == 200
    assert resp.json()["suggestions"] == ["Gaming Chair", "Chair Mat"]


def test_similar_listings_and_unknown_listing():
    resp = client.get("/listings/1/similar")
    assert resp.status_code == 200
    ids = [l["id"] for l in resp.json()["listings"]]
    assert "1" not in ids
    assert ids[0] == "2"

    assert client.get("/listings/nope/similar").status_code == 404


def test_trending_and_category_endpoints():
    trending = client.get("/trending", params={"limit": 2}).json()["listings"]
    assert [l["id"] for l in trending] == ["1", "2"]

    give = client.get("/categories/Give").json()["listings"]
    assert [l["id"] for l in give] == ["3"]


def test_personalized_endpoint():
    body = {
        "user_id": "someone",
        "history": [{"listingId": "2", "type": "bookmark", "timestamp": NOW.isoformat()}],
        "limit": 5,
    }
    resp = client.post("/recommendations/personalized", json=body)
    assert resp.status_code == 200
    ids = [l["id"] for l in resp.json()["listings"]]
    assert "2" not in ids
    assert ids[0] == "1"

    assert client.post("/recommendations/personalized", json={"user_id": ""}).status_code == 422


def test_missing_catalog_is_a_server_error(monkeypatch):
    monkeypatch.setattr(api, "_catalog", None)
    assert client.get("/trending").status_code == 500


def test_rate_limited_requests_get_429(monkeypatch):
    monkeypatch.setattr(api, "rate_limiter", RateLimiter(RateLimitConfig(window_seconds=60, max_requests=1)))
    assert client.get("/health").status_code == 200

    resp = client.get("/health")
    assert resp.status_code == 429
    body = resp.json()
    assert body["error"] == "Too many requests"
    assert 0 < body["retryAfter"] <= 60
    assert resp.headers["Retry-After"] == str(body["retryAfter"])
    assert resp.headers["X-RateLimit-Remaining"] == "0"


def test_suggest_treats_naive_timestamps_as_utc():
    api.set_catalog([
        CatalogItem(id="n", title="Chair Cushion", created_at=datetime(2024, 6, 1, 12, 0)),
        CatalogItem(id="a", title="Chair Cover", created_at=datetime(2024, 6, 1, 11, 30, tzinfo=timezone.utc)),
    ])
    resp = client.post("/suggest", json={"query": "chair"})
    assert resp.json()["suggestions"] == ["Chair Cushion", "Chair Cover"]
