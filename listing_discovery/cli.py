# listing_discovery/cli.py
from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from . import config
from .catalog_build import load_catalog_snapshot
from .config import CatalogItem, UserActivity
from .recommend import (
    get_personalized_recommendations,
    get_recommendations_for_category,
    get_similar_items,
    get_trending_items,
)
from .search import search, suggest


def _table(items: Sequence[CatalogItem], scores: Optional[List[float]] = None) -> str:
    if not items:
        return "(no results)"
    rows = []
    for i, item in enumerate(items):
        row = {"id": item.id, "title": item.title, "category": item.category,
               "sub_category": item.sub_category, "price": item.price}
        if scores is not None:
            row = {"score": round(scores[i], 3), **row}
        rows.append(row)
    return pd.DataFrame(rows).to_string(index=False)


def _load_history(path: Path) -> List[UserActivity]:
    with path.open("r", encoding="utf-8") as f:
        return [UserActivity.model_validate(rec) for rec in json.load(f)]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="listing-discovery")
    ap.add_argument("--catalog", type=Path, default=config.CATALOG_SNAPSHOT_PATH,
                    help="Catalog snapshot (.json, .csv or .parquet)")
    ap.add_argument("--now", type=datetime.fromisoformat, default=None,
                    help="Reference time (ISO 8601) for recency scoring")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="Fuzzy search listings")
    p.add_argument("query")
    p.add_argument("--keys", nargs="+", default=list(config.DEFAULT_SEARCH_KEYS))
    p.add_argument("--threshold", type=float, default=config.SEARCH_THRESHOLD)
    p.add_argument("--limit", type=int, default=None)

    p = sub.add_parser("suggest", help="Autocomplete over listing titles")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=config.SUGGEST_LIMIT)

    p = sub.add_parser("trending", help="Trending listings")
    p.add_argument("--limit", type=int, default=config.TRENDING_LIMIT)

    p = sub.add_parser("similar", help="Listings similar to one listing")
    p.add_argument("listing_id")
    p.add_argument("--limit", type=int, default=config.SIMILAR_LIMIT)

    p = sub.add_parser("category", help="Top listings of a category")
    p.add_argument("category")
    p.add_argument("--limit", type=int, default=config.CATEGORY_LIMIT)

    p = sub.add_parser("personalized", help="Picks for a user from an activity file")
    p.add_argument("user_id")
    p.add_argument("--history", type=Path, required=True,
                   help="JSON array of {listingId, type, timestamp}")
    p.add_argument("--limit", type=int, default=config.PERSONALIZED_LIMIT)

    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    catalog = load_catalog_snapshot(args.catalog)

    if args.command == "search":
        results = search(catalog, args.query, args.keys, threshold=args.threshold, limit=args.limit)
        print(_table([r.item for r in results], [r.score for r in results]))
    elif args.command == "suggest":
        titles = [item.title for item in catalog if item.title]
        for s in suggest(args.query, titles, args.limit):
            print(s)
    elif args.command == "trending":
        print(_table(get_trending_items(catalog, args.limit, now=args.now)))
    elif args.command == "similar":
        subject = next((item for item in catalog if item.id == args.listing_id), None)
        if subject is None:
            print(f"Listing {args.listing_id} not found")
            return 1
        print(_table(get_similar_items(subject, catalog, args.limit)))
    elif args.command == "category":
        print(_table(get_recommendations_for_category(args.category, catalog, args.limit, now=args.now)))
    elif args.command == "personalized":
        history = _load_history(args.history)
        print(_table(get_personalized_recommendations(args.user_id, history, catalog, args.limit, now=args.now)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
