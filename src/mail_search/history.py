"""Append-only search history and the suggestions derived from it."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Union

from .config import Settings, get_settings
from .models.search import HistoryStats, SearchHistoryEntry

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 500
RECENT_SEARCHES = 10

_SCHEMA = """
CREATE TABLE IF NOT EXISTS search_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id TEXT NOT NULL,
    query TEXT NOT NULL CHECK (length(query) BETWEEN 1 AND 500),
    searched_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_history_owner_time
    ON search_history (owner_id, searched_at);
"""


class HistoryStore(Protocol):
    def append(self, entry: SearchHistoryEntry) -> None: ...

    def entries(self, owner_id: str, limit: Optional[int] = None) -> List[SearchHistoryEntry]: ...

    def distinct_matching(self, owner_id: str, needle: str, limit: int) -> List[SearchHistoryEntry]: ...

    def clear(self, owner_id: str) -> None: ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteSearchHistoryStore:
    """History rows in a SQLite table indexed by (owner_id, searched_at)."""

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # SQLite LOWER() only folds ASCII.
        self._conn.create_function("py_lower", 1, str.lower, deterministic=True)
        self._lock = threading.Lock()
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)

    def append(self, entry: SearchHistoryEntry) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO search_history (owner_id, query, searched_at) VALUES (?, ?, ?)",
                (entry.owner_id, entry.query, entry.searched_at.isoformat()),
            )

    def entries(self, owner_id: str, limit: Optional[int] = None) -> List[SearchHistoryEntry]:
        sql = (
            "SELECT owner_id, query, searched_at FROM search_history "
            "WHERE owner_id = ? ORDER BY searched_at DESC, id DESC"
        )
        params: tuple = (owner_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (owner_id, limit)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_entry(row) for row in rows]

    def distinct_matching(self, owner_id: str, needle: str, limit: int) -> List[SearchHistoryEntry]:
        sql = (
            "SELECT owner_id, query, searched_at FROM search_history WHERE id IN ("
            "    SELECT MAX(id) FROM search_history "
            "    WHERE owner_id = ? AND py_lower(query) LIKE ? ESCAPE '\\' "
            "    GROUP BY py_lower(query)"
            ") ORDER BY searched_at DESC, id DESC LIMIT ?"
        )
        pattern = f"%{_escape_like(needle.lower())}%"
        with self._lock:
            rows = self._conn.execute(sql, (owner_id, pattern, limit)).fetchall()
        return [_row_to_entry(row) for row in rows]

    def clear(self, owner_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM search_history WHERE owner_id = ?", (owner_id,))

    def close(self) -> None:
        self._conn.close()


def _row_to_entry(row: sqlite3.Row) -> SearchHistoryEntry:
    return SearchHistoryEntry(
        owner_id=row["owner_id"],
        query=row["query"],
        searched_at=datetime.fromisoformat(row["searched_at"]),
    )


class InMemorySearchHistoryStore:
    def __init__(self) -> None:
        self._entries: Dict[str, List[SearchHistoryEntry]] = {}
        self._lock = threading.Lock()

    def append(self, entry: SearchHistoryEntry) -> None:
        with self._lock:
            self._entries.setdefault(entry.owner_id, []).append(entry)

    def entries(self, owner_id: str, limit: Optional[int] = None) -> List[SearchHistoryEntry]:
        with self._lock:
            owned = list(self._entries.get(owner_id, []))
        # Stable sort keeps insertion order, reversed, for equal timestamps.
        ordered = sorted(reversed(owned), key=lambda entry: entry.searched_at, reverse=True)
        return ordered if limit is None else ordered[:limit]

    def distinct_matching(self, owner_id: str, needle: str, limit: int) -> List[SearchHistoryEntry]:
        needle = needle.lower()
        seen = set()
        matches: List[SearchHistoryEntry] = []
        for entry in self.entries(owner_id):
            key = entry.query.lower()
            if needle not in key or key in seen:
                continue
            seen.add(key)
            matches.append(entry)
            if len(matches) >= limit:
                break
        return matches

    def clear(self, owner_id: str) -> None:
        with self._lock:
            self._entries.pop(owner_id, None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchHistoryService:
    """Records raw queries per owner and serves recent matches as suggestions."""

    def __init__(self, store: HistoryStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SearchHistoryService":
        settings = settings or get_settings()
        return cls(SQLiteSearchHistoryStore(settings.history_db_path))

    def record(self, owner_id: str, query: str) -> None:
        """Append a query. Never raises: history is not critical to searching."""
        text = (query or "").strip()[:MAX_QUERY_LENGTH]
        if not text:
            return
        try:
            self._store.append(SearchHistoryEntry(owner_id=owner_id, query=text, searched_at=self._clock()))
        except Exception:
            logger.exception("Failed to save search history for owner %s", owner_id)
            return
        logger.debug("Saved search history: %r", text)

    def suggestions(self, owner_id: str, text: str, limit: int = 5) -> List[str]:
        """Recent distinct queries containing ``text``, most recent first."""
        if limit <= 0:
            return []
        entries = self._store.distinct_matching(owner_id, (text or "").strip(), limit)
        return [entry.query for entry in entries]

    def clear(self, owner_id: str) -> None:
        self._store.clear(owner_id)
        logger.info("Cleared search history for owner %s", owner_id)

    def stats(self, owner_id: str) -> HistoryStats:
        entries = self._store.entries(owner_id)
        return HistoryStats(
            total=len(entries),
            unique_queries=len({entry.query for entry in entries}),
            recent=tuple(entry.query for entry in entries[:RECENT_SEARCHES]),
        )


__all__ = [
    "HistoryStore",
    "InMemorySearchHistoryStore",
    "SQLiteSearchHistoryStore",
    "SearchHistoryService",
]
