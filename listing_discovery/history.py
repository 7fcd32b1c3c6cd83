from __future__ import annotations

"""
Search history and saved searches.

Both keep their state in memory for the current session and persist it,
best-effort, as a JSON array under a fixed key of a ``KeyValueStore``.
A failing store (quota, disk, serialization) is logged and otherwise ignored:
the caller's operation still succeeds for this session.
"""

import json
import re
import secrets
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from loguru import logger
from pydantic import ValidationError

from .config import (
    MAX_HISTORY,
    MAX_SAVED_SEARCHES,
    SAVED_SEARCHES_KEY,
    SEARCH_HISTORY_KEY,
    SavedSearch,
    SearchFilters,
)


class StorageError(Exception):
    """Raised by a store that cannot accept a write."""


# ---------------------------
# Stores
# ---------------------------

class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store; ``max_bytes`` emulates a browser storage quota."""

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self.max_bytes = max_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
            if used + len(value.encode("utf-8")) > self.max_bytes:
                raise StorageError(f"quota of {self.max_bytes} bytes exceeded writing {key!r}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class JsonFileStore:
    """One ``<key>.json`` file per key under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _read_json_list(store: KeyValueStore, key: str) -> list:
    try:
        raw = store.get(key)
        if not raw:
            return []
        data = json.loads(raw)
    except (OSError, StorageError, ValueError) as e:
        logger.warning("Failed to read {} from storage: {}", key, e)
        return []
    if not isinstance(data, list):
        logger.warning("Ignoring {}: expected a JSON array, got {}", key, type(data).__name__)
        return []
    return data


def _write_json(store: KeyValueStore, key: str, payload: list, action: str) -> bool:
    try:
        store.set(key, json.dumps(payload))
    except (OSError, StorageError, TypeError, ValueError) as e:
        logger.warning("Failed to {}: {}", action, e)
        return False
    return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------
# Search history
# ---------------------------

class SearchHistory:
    """
    Most-recent-first list of past queries.

    Adding a query that is already present (case-insensitively) moves it to
    the front with its newest spelling; the list is capped at ``max_entries``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = SEARCH_HISTORY_KEY,
        max_entries: int = MAX_HISTORY,
    ) -> None:
        self.store = store
        self.key = key
        self.max_entries = max_entries
        self._entries: List[str] = [str(q) for q in _read_json_list(store, key)][:max_entries]

    def entries(self) -> List[str]:
        return list(self._entries)

    def add(self, query: str) -> None:
        query = (query or "").strip()
        if not query:
            return
        lowered = query.lower()
        kept = [q for q in self._entries if q.lower() != lowered]
        self._entries = [query, *kept][: self.max_entries]
        _write_json(self.store, self.key, self._entries, "save search history")

    def remove(self, query: str) -> None:
        self._entries = [q for q in self._entries if q != query]
        _write_json(self.store, self.key, self._entries, "update search history")

    def clear(self) -> None:
        self._entries = []
        try:
            self.store.remove(self.key)
        except (OSError, StorageError) as e:
            logger.warning("Failed to clear search history: {}", e)


# ---------------------------
# Saved searches
# ---------------------------

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _new_search_id(now: datetime) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"search_{int(now.timestamp() * 1000)}_{suffix}"


class SavedSearches:
    """Named query + filter combinations, newest first, capped at ``max_saved``."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = SAVED_SEARCHES_KEY,
        max_saved: int = MAX_SAVED_SEARCHES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.key = key
        self.max_saved = max_saved
        self.clock = clock
        self._searches: List[SavedSearch] = self._load()

    def _load(self) -> List[SavedSearch]:
        out: List[SavedSearch] = []
        for raw in _read_json_list(self.store, self.key):
            try:
                out.append(SavedSearch.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed saved search: {}", e)
        return out[: self.max_saved]

    def _persist(self, action: str) -> None:
        payload = [s.model_dump(mode="json") for s in self._searches]
        _write_json(self.store, self.key, payload, action)

    def all(self) -> List[SavedSearch]:
        return list(self._searches)

    def get(self, search_id: str) -> Optional[SavedSearch]:
        return next((s for s in self._searches if s.id == search_id), None)

    def save(self, name: str, query: str, filters: Optional[SearchFilters] = None) -> SavedSearch:
        now = self.clock()
        saved = SavedSearch(
            id=_new_search_id(now),
            name=name,
            query=query,
            filters=filters or SearchFilters(),
            created_at=now,
            last_used=now,
            use_count=1,
        )
        self._searches = [saved, *self._searches][: self.max_saved]
        self._persist("save search")
        return saved

    def record_use(self, search_id: str) -> None:
        now = self.clock()
        self._searches = [
            s.model_copy(update={"last_used": now, "use_count": s.use_count + 1})
            if s.id == search_id
            else s
            for s in self._searches
        ]
        self._persist("update search usage")

    def delete(self, search_id: str) -> None:
        self._searches = [s for s in self._searches if s.id != search_id]
        self._persist("delete search")

    def exists(self, query: str, filters: Optional[SearchFilters] = None) -> bool:
        filters = filters or SearchFilters()
        return any(s.query == query and s.filters == filters for s in self._searches)
