from __future__ import annotations

"""
Catalog snapshot loading.

A snapshot is an export of the listings collection from the document store,
as JSON (array of records), CSV or Parquet. Columns are standardised to the
``CatalogItem`` field names, text fields are cleaned, and rows that still fail
validation are logged and skipped.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

import pandas as pd
from loguru import logger
from pydantic import ValidationError

from .config import CATALOG_SNAPSHOT_PATH, CatalogItem
from .normalize import basic_clean


# ---------------------------
# Column detection / standardization
# ---------------------------

COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "id": ["id", "listingId", "listing_id", "_id"],
    "title": ["title", "name"],
    "description": ["description", "desc"],
    "sub_category": ["sub_category", "subCategory", "subcategory"],
    "author_id": ["author_id", "authorId", "ownerId", "userId"],
    "author_name": ["author_name", "authorName"],
    "created_at": ["created_at", "createdAt", "created", "timestamp"],
    "image_url": ["image_url", "imageUrl"],
}

TEXT_COLUMNS = ["title", "description"]


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename exported columns to the canonical ``CatalogItem`` names.

    Exact matches win over case-insensitive ones; unknown columns are kept.
    """
    col_map: Dict[str, str] = {}
    lower_to_original = {str(c).lower(): c for c in df.columns}

    for canon, candidates in COLUMN_CANDIDATES.items():
        if canon in df.columns:
            continue
        for candidate in candidates:
            if candidate in df.columns:
                col_map[candidate] = canon
                break
            original = lower_to_original.get(candidate.lower())
            if original is not None:
                col_map[original] = canon
                break

    if col_map:
        logger.info("Standardizing columns with map: {}", col_map)
    df_std = df.rename(columns=col_map)

    missing = [c for c in ("id", "created_at") if c not in df_std.columns]
    if missing:
        logger.warning("Catalog snapshot is missing required columns: {}", missing)
    return df_std


def _flatten_author(df: pd.DataFrame) -> pd.DataFrame:
    # Exports populated client-side carry an embedded ``author`` object.
    if "author" not in df.columns:
        return df
    df = df.copy()
    authors = df["author"].map(lambda a: a if isinstance(a, dict) else {})
    for col, key in (("author_id", "id"), ("author_name", "name")):
        embedded = authors.map(lambda a, k=key: a.get(k))
        if col in df.columns:
            df[col] = df[col].where(df[col].notna(), embedded)
        else:
            df[col] = embedded
    return df.drop(columns=["author"])


def normalize_catalog_df(df_raw: pd.DataFrame) -> pd.DataFrame:
    """Standardise columns, clean text fields and turn NaN into ``None``."""
    logger.info("Normalizing catalog dataframe with {} raw rows", len(df_raw))
    df = _flatten_author(_standardize_columns(df_raw.copy()))

    for col in TEXT_COLUMNS:
        if col in df.columns:
            df[col] = df[col].map(lambda v: basic_clean(v) if isinstance(v, str) else v)

    if "id" in df.columns:
        before = len(df)
        df = df[df["id"].notna()]
        df = df.drop_duplicates(subset=["id"], keep="first").reset_index(drop=True)
        if len(df) != before:
            logger.warning("Dropped {} rows without id or with duplicate id", before - len(df))

    df = df.astype(object).where(pd.notna(df), None)
    return df


def catalog_from_records(records: Iterable[dict]) -> List[CatalogItem]:
    """Validate records into ``CatalogItem``s, skipping (and logging) bad rows."""
    items: List[CatalogItem] = []
    for i, rec in enumerate(records):
        try:
            items.append(CatalogItem.model_validate(rec))
        except ValidationError as e:
            logger.warning("Skipping catalog row {}: {}", i, e.errors()[0].get("msg", e))
    return items


def catalog_to_frame(items: Sequence[CatalogItem]) -> pd.DataFrame:
    return pd.DataFrame([item.model_dump() for item in items])


# ---------------------------
# IO helpers
# ---------------------------

def load_raw_snapshot(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Catalog snapshot not found: {path}")

    ext = path.suffix.lower()
    if ext == ".json":
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if isinstance(raw, dict):
            raw = raw.get("listings") or raw.get("data") or []
        return pd.DataFrame.from_records(raw)
    if ext == ".csv":
        return pd.read_csv(path, encoding="utf-8")
    if ext == ".parquet":
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported catalog snapshot format: {ext}")


def load_catalog_snapshot(path: Path = CATALOG_SNAPSHOT_PATH) -> List[CatalogItem]:
    """
    Convenience helper: load, normalize and validate a snapshot.
    """
    path = Path(path)
    logger.info("Loading catalog snapshot from {}", path)
    df = normalize_catalog_df(load_raw_snapshot(path))
    items = catalog_from_records(df.to_dict(orient="records"))
    logger.info("Loaded catalog snapshot with {} listings", len(items))
    return items


def write_catalog_snapshot(items: Sequence[CatalogItem], output_path: Path) -> Path:
    """Write listings back out as JSON (camelCase keys) or Parquet."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() == ".parquet":
        catalog_to_frame(items).to_parquet(output_path, index=False)
    else:
        payload = [item.model_dump(mode="json", by_alias=True) for item in items]
        output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Catalog snapshot written with {} listings to {}", len(items), output_path)
    return output_path
