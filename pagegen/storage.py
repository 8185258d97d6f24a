import sqlite3
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from pagegen.errors import StorageError
from pagegen.models import AdCreative, GenerationRequest, GenerationResult, HistoryEntry, Pages

logger = logging.getLogger(__name__)

HISTORY_KEY = "pageGenHistory"
DISPLAY_NAME_LENGTH = 40

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_history_adapter = TypeAdapter(List[HistoryEntry])


class DatabaseManager:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_schema(self):
        with self.get_connection() as conn:
            conn.executescript(SCHEMA_SQL)


# ── Key/value capability ───────────────────────────────────────────

class KeyValueStore(ABC):
    """Whole-value string storage. Implementations raise StorageError on failure."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class SQLiteKeyValueStore(KeyValueStore):
    def __init__(self, db: DatabaseManager):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
                return row['value'] if row else None
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            with self.db.get_connection() as conn:
                conn.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with self.db.get_connection() as conn:
                conn.execute("DELETE FROM settings WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete {key!r}: {e}") from e


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


# ── History ────────────────────────────────────────────────────────

def make_display_name(product_description: str) -> str:
    if len(product_description) > DISPLAY_NAME_LENGTH:
        return product_description[:DISPLAY_NAME_LENGTH] + "..."
    return product_description


def make_entry_id(existing_ids: Iterable[str], now: datetime) -> str:
    """Millisecond creation timestamp, bumped until it is unused."""
    taken = set(existing_ids)
    millis = int(now.timestamp() * 1000)
    while str(millis) in taken:
        millis += 1
    return str(millis)


def new_history_entry(
    request: GenerationRequest,
    result: GenerationResult,
    existing_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> HistoryEntry:
    now = now or datetime.now(timezone.utc)
    return HistoryEntry(
        id=make_entry_id(existing_ids, now),
        display_name=make_display_name(request.product_description),
        created_at=now,
        pages={stage: page.model_copy() for stage, page in result.pages.items()},
        ad_creative=result.ad_creative.model_copy(deep=True),
    )


class HistoryStore:
    """Most-recent-first log of generations, persisted as one JSON value.

    Every mutation rewrites the whole sequence. Persistence problems are logged
    and never block the in-memory update.
    """

    def __init__(self, store: KeyValueStore, key: str = HISTORY_KEY):
        self.store = store
        self.key = key
        self._entries: List[HistoryEntry] = self._load()

    def _load(self) -> List[HistoryEntry]:
        try:
            raw = self.store.get(self.key)
        except StorageError as e:
            logger.warning("[HISTORY] Failed to read history, starting empty: %s", e)
            return []
        if raw is None:
            return []
        try:
            return _history_adapter.validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.error("[HISTORY] Discarding corrupt history value: %s", e)
            try:
                self.store.delete(self.key)
            except StorageError as delete_error:
                logger.warning("[HISTORY] Failed to clear corrupt history: %s", delete_error)
            return []

    def _persist(self) -> None:
        payload = json.dumps([entry.model_dump(mode="json", by_alias=True) for entry in self._entries])
        try:
            self.store.set(self.key, payload)
        except StorageError as e:
            logger.error("[HISTORY] Failed to save history, keeping it in memory only: %s", e)

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def ids(self) -> List[str]:
        return [entry.id for entry in self._entries]

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        stored = entry.model_copy(deep=True)
        self._entries = [stored] + self._entries
        self._persist()
        return stored

    def update(self, entry_id: str, pages: Pages, ad_creative: AdCreative, display_name: str) -> Optional[HistoryEntry]:
        updated: Optional[HistoryEntry] = None
        entries = []
        for entry in self._entries:
            if entry.id == entry_id:
                updated = entry.model_copy(update={
                    "pages": {stage: page.model_copy() for stage, page in pages.items()},
                    "ad_creative": ad_creative.model_copy(deep=True),
                    "display_name": display_name,
                })
                entries.append(updated)
            else:
                entries.append(entry)
        self._entries = entries
        self._persist()
        return updated

    def remove(self, entry_id: str) -> bool:
        remaining = [entry for entry in self._entries if entry.id != entry_id]
        removed = len(remaining) != len(self._entries)
        self._entries = remaining
        self._persist()
        return removed
