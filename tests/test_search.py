import copy

from listing_discovery.history import MemoryKeyValueStore, SearchHistory
from listing_discovery.search import (
    SearchSession,
    extract_field,
    highlight_matches,
    search,
    suggest,
)


ITEMS = [
    {"title": "Gaming Chair"},
    {"title": "Office Desk"},
    {"title": "Chair Mat"},
]


def test_search_chair_scenario_keeps_input_order_for_ties():
    results = search(ITEMS, "chair", ["title"], threshold=0.3)
    titles = [r.item["title"] for r in results]
    assert titles == ["Gaming Chair", "Chair Mat"]
    assert all(r.score == 1.0 for r in results)
    assert results[0].matched_fields == ["title"]
    assert results[0].matches == ["Gaming Chair"]


def test_empty_query_returns_everything_unfiltered():
    for q in ["", "   ", None]:
        results = search(ITEMS, q, ["title"])
        assert [r.item for r in results] == ITEMS
        assert all(r.score == 1.0 and r.matched_fields == [] for r in results)


def test_every_result_meets_threshold_and_limit():
    items = [{"title": t} for t in ["piano", "pianos", "plano", "guitar", "drum kit", "pan"]]
    for threshold in (0.2, 0.5, 0.8):
        results = search(items, "piano", ["title"], threshold=threshold, limit=3)
        assert len(results) <= 3
        assert all(r.score >= threshold for r in results)


def test_results_sorted_descending_when_requested():
    items = [{"title": "plano"}, {"title": "piano bench"}, {"title": "pian"}]
    results = search(items, "piano", ["title"], threshold=0.3)
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert results[0].item["title"] == "piano bench"

    unsorted = search(items, "piano", ["title"], threshold=0.3, sort_by_score=False)
    assert [r.item["title"] for r in unsorted] == ["plano", "piano bench", "pian"]


def test_best_field_wins_and_matched_fields_are_deduplicated():
    items = [{"title": "Projector", "description": "HD projector with screen"}]
    results = search(
        items,
        "projector",
        ["title", "description", ("upper_title", lambda i: i["title"].upper())],
    )
    assert results[0].score == 1.0
    assert results[0].matched_fields == ["title", "description", "upper_title"]
    # "Projector" and "PROJECTOR" are different texts; both kept
    assert len(results[0].matches) == 3


def test_missing_and_none_fields_become_empty_text():
    class Listing:
        title = None

    assert extract_field({"title": None}, "title") == ""
    assert extract_field({}, "title") == ""
    assert extract_field(Listing(), "title") == ""
    assert extract_field(Listing(), "nope") == ""
    assert search([{"title": None}], "desk", ["title", "missing"]) == []


def test_search_on_empty_items():
    assert search([], "chair", ["title"]) == []


def test_search_does_not_mutate_items_and_is_idempotent():
    items = copy.deepcopy(ITEMS)
    first = search(items, "chair", ["title"])
    second = search(items, "chair", ["title"])
    assert items == ITEMS
    assert first == second


def test_suggest_empty_query_returns_first_n():
    candidates = ["piano", "guitar", "chairs", "tables", "drums", "lights"]
    assert suggest("", candidates, 3) == ["piano", "guitar", "chairs"]


def test_suggest_ranks_and_keeps_duplicates():
    candidates = ["guitar", "guitar amp", "piano", "guitar"]
    out = suggest("guitar", candidates, limit=5)
    assert out == ["guitar", "guitar amp", "guitar"]


def test_highlight_matches():
    assert highlight_matches("Gaming Chair", "chair") == "Gaming <mark>Chair</mark>"
    assert highlight_matches("Office Desk", "chair") == "Office Desk"
    assert highlight_matches("a+b", "a+b") == "<mark>a+b</mark>"
    assert highlight_matches("text", "") == "text"


def test_search_session_records_history_and_suggests_from_it():
    history = SearchHistory(MemoryKeyValueStore())
    session = SearchSession(ITEMS, ["title"], history=history, popular=["chair mat"])

    results = session.run("Gaming")
    assert [r.item["title"] for r in results] == ["Gaming Chair"]
    assert history.entries() == ["Gaming"]
    assert session.has_query
    assert session.highlight("Gaming Chair") == "<mark>Gaming</mark> Chair"

    assert session.suggestions("gam") == ["Gaming"]
    assert session.suggestions("") == []

    session.run("   ")
    assert history.entries() == ["Gaming"]
    session.clear()
    assert not session.has_query
