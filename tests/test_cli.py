import json

import pytest

from listing_discovery.cli import build_parser, main


LISTINGS = [
    {"id": "p1", "title": "Upright Piano", "category": "Sell", "subCategory": "Music",
     "price": 800, "authorId": "u1", "views": 250, "createdAt": "2024-06-01T08:00:00+00:00"},
    {"id": "p2", "title": "Digital Piano", "category": "Sell", "subCategory": "Music",
     "price": 600, "authorId": "u2", "createdAt": "2024-05-20T08:00:00+00:00"},
    {"id": "g1", "title": "Guitar Stand", "category": "Give", "subCategory": "Music",
     "authorId": "u3", "createdAt": "2024-05-01T08:00:00+00:00"},
]


@pytest.fixture
def snapshot(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(LISTINGS), encoding="utf-8")
    return path


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_search_prints_scored_table(snapshot, capsys):
    assert main(["--catalog", str(snapshot), "search", "piano", "--keys", "title"]) == 0
    out = capsys.readouterr().out
    assert "Upright Piano" in out and "Digital Piano" in out
    assert "Guitar Stand" not in out
    assert "score" in out


def test_suggest_prints_one_title_per_line(snapshot, capsys):
    main(["--catalog", str(snapshot), "suggest", "guitar"])
    assert capsys.readouterr().out.splitlines() == ["Guitar Stand"]


def test_trending_with_fixed_now(snapshot, capsys):
    main(["--catalog", str(snapshot), "--now", "2024-06-01T12:00:00+00:00", "trending", "--limit", "1"])
    out = capsys.readouterr().out
    assert "p1" in out and "p2" not in out


def test_similar_unknown_listing_returns_error_code(snapshot, capsys):
    assert main(["--catalog", str(snapshot), "similar", "missing"]) == 1
    assert "not found" in capsys.readouterr().out

    assert main(["--catalog", str(snapshot), "similar", "p1"]) == 0
    assert "Digital Piano" in capsys.readouterr().out


def test_personalized_reads_history_file(snapshot, tmp_path, capsys):
    history = tmp_path / "history.json"
    history.write_text(
        json.dumps([{"listingId": "p1", "type": "message", "timestamp": "2024-06-01T09:00:00+00:00"}]),
        encoding="utf-8",
    )
    code = main([
        "--catalog", str(snapshot), "--now", "2024-06-01T12:00:00+00:00",
        "personalized", "someone", "--history", str(history),
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "p2" in out
    assert "p1" not in out


def test_category_with_no_results(snapshot, capsys):
    main(["--catalog", str(snapshot), "category", "Wanted"])
    assert "(no results)" in capsys.readouterr().out
