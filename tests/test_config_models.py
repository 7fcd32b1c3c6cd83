from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from listing_discovery.config import (
    RATE_LIMIT_PRESETS,
    CatalogItem,
    HealthResponse,
    PersonalizedRequest,
    RateLimitConfig,
    RecommendationWeights,
    SimilarityWeights,
    UserActivity,
)


def test_catalog_item_accepts_camel_case_and_snake_case():
    camel = CatalogItem.model_validate(
        {"id": 5, "subCategory": "Books", "authorId": 9, "createdAt": "2024-01-01T00:00:00Z"}
    )
    snake = CatalogItem(
        id="5", sub_category="Books", author_id="9",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    assert camel == snake
    assert camel.model_dump(by_alias=True)["subCategory"] == "Books"


def test_catalog_item_coerces_loose_fields():
    item = CatalogItem.model_validate(
        {
            "id": "x",
            "createdAt": "2024-01-01T00:00:00Z",
            "title": None,
            "tags": [{"id": "t1", "name": "Youth"}, "t1", {"name": "no id"}],
            "images": "a.jpg",
            "keywords": None,
            "featured": 1,
        }
    )
    assert item.title == ""
    assert item.tags == ["t1"]
    assert item.images == ["a.jpg"]
    assert item.keywords == []
    assert item.featured is True


def test_catalog_item_requires_created_at():
    with pytest.raises(ValidationError):
        CatalogItem(id="x")


def test_user_activity_types():
    act = UserActivity.model_validate(
        {"listingId": 3, "type": "bookmark", "timestamp": "2024-01-01T00:00:00Z"}
    )
    assert act.listing_id == "3"
    with pytest.raises(ValidationError):
        UserActivity(listing_id="3", type="share", timestamp=datetime.now(timezone.utc))


def test_weights_can_be_overridden_one_field_at_a_time():
    weights = RecommendationWeights(similar=SimilarityWeights(price=0.0))
    assert weights.similar.price == 0.0
    assert weights.similar.category == 0.4
    assert weights.trending.day_bonus == 0.5
    assert weights.personalized.activity["purchase"] == 10.0


def test_rate_limit_config_validation():
    assert RATE_LIMIT_PRESETS["UPLOAD"].max_requests == 10
    with pytest.raises(ValidationError):
        RateLimitConfig(window_seconds=0, max_requests=1)


def test_request_and_health_models():
    with pytest.raises(ValidationError):
        PersonalizedRequest(user_id="")
    health = HealthResponse(status="healthy")
    assert health.catalog_size == 0
