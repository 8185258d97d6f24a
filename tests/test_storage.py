import json
from datetime import datetime, timezone

import pytest

from fakes import ReadOnlyStore
from pagegen.models import FunnelStage
from pagegen.normalizer import normalize_result
from pagegen.storage import (
    HISTORY_KEY,
    DatabaseManager,
    HistoryStore,
    InMemoryKeyValueStore,
    SQLiteKeyValueStore,
    make_display_name,
    make_entry_id,
    new_history_entry,
)


@pytest.fixture()
def entry(generation_request, raw_funnel):
    return new_history_entry(generation_request, normalize_result(raw_funnel))


def test_display_name_is_truncated_to_forty_characters():
    assert make_display_name("short") == "short"
    assert make_display_name("x" * 41) == "x" * 40 + "..."
    assert make_display_name("x" * 40) == "x" * 40


def test_entry_ids_are_unique_millisecond_timestamps():
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    first = make_entry_id([], now)

    assert first == str(int(now.timestamp() * 1000))
    assert make_entry_id([first], now) == str(int(first) + 1)


def test_history_round_trips_through_storage(entry):
    kv = InMemoryKeyValueStore()
    HistoryStore(kv).append(entry)

    reloaded = HistoryStore(kv)

    assert reloaded.entries == [entry]
    assert json.loads(kv.values[HISTORY_KEY])[0]["displayName"] == entry.display_name


def test_append_puts_newest_first(entry):
    store = HistoryStore(InMemoryKeyValueStore())
    store.append(entry)
    newer = entry.model_copy(update={"id": str(int(entry.id) + 1)})

    store.append(newer)

    assert store.ids() == [newer.id, entry.id]


def test_update_replaces_content_and_name(entry):
    kv = InMemoryKeyValueStore()
    store = HistoryStore(kv)
    store.append(entry)
    pages = dict(entry.pages)
    pages[FunnelStage.TOFU] = pages[FunnelStage.TOFU].model_copy(update={"html_content": "<p>v2</p>"})

    updated = store.update(entry.id, pages, entry.ad_creative, "Renamed")

    assert updated.display_name == "Renamed"
    assert updated.created_at == entry.created_at
    assert HistoryStore(kv).get(entry.id).pages[FunnelStage.TOFU].html_content == "<p>v2</p>"


def test_update_unknown_id_leaves_entries_unchanged(entry):
    store = HistoryStore(InMemoryKeyValueStore())
    store.append(entry)

    assert store.update("missing", entry.pages, entry.ad_creative, "x") is None
    assert store.entries == [entry]


def test_remove(entry):
    kv = InMemoryKeyValueStore()
    store = HistoryStore(kv)
    store.append(entry)

    assert store.remove(entry.id) is True
    assert store.remove(entry.id) is False
    assert HistoryStore(kv).entries == []


@pytest.mark.parametrize("value", ["not json", '{"a": 1}', '[{"id": 1}]'])
def test_corrupt_history_loads_empty_and_is_cleared(value):
    kv = InMemoryKeyValueStore({HISTORY_KEY: value})

    store = HistoryStore(kv)

    assert store.entries == []
    assert HISTORY_KEY not in kv.values


def test_write_failure_keeps_history_in_memory(entry):
    store = HistoryStore(ReadOnlyStore())

    store.append(entry)

    assert store.ids() == [entry.id]


def test_sqlite_store(tmp_path, entry):
    db = DatabaseManager(str(tmp_path / "history.db"))
    db.initialize_schema()
    kv = SQLiteKeyValueStore(db)

    assert kv.get("missing") is None
    HistoryStore(kv).append(entry)

    assert HistoryStore(SQLiteKeyValueStore(db)).entries == [entry]
    kv.delete(HISTORY_KEY)
    assert kv.get(HISTORY_KEY) is None
