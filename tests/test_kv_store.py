# tests/test_kv_store.py

from __future__ import annotations

from pathlib import Path

import pytest

from taskdeck.errors import PersistenceError
from taskdeck.storage.kv_store import JsonFileKeyValueStore, SqliteKeyValueStore


def test_sqlite_set_get_overwrite_remove(tmp_path: Path) -> None:
    kv = SqliteKeyValueStore(tmp_path / "storage.sqlite3")

    assert kv.get_item("tasks") is None
    kv.set_item("tasks", "[]")
    kv.set_item("tasks", '[{"id": "1"}]')
    kv.set_item("passcode", "1234")

    assert kv.get_item("tasks") == '[{"id": "1"}]'
    assert kv.count_keys() == 2

    kv.remove_item("passcode")
    kv.remove_item("never-set")
    assert kv.get_item("passcode") is None
    assert kv.count_keys() == 1


def test_sqlite_values_survive_reopen(tmp_path: Path) -> None:
    db = tmp_path / "nested" / "storage.sqlite3"
    SqliteKeyValueStore(db).set_item("biometricEnabled", "true")

    assert SqliteKeyValueStore(db).get_item("biometricEnabled") == "true"


def test_json_file_store_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    kv = JsonFileKeyValueStore(path)

    assert kv.get_item("tasks") is None
    kv.set_item("tasks", "[]")
    kv.set_item("customCategories", '[{"name": "garden", "color": "#34C759"}]')
    kv.remove_item("tasks")

    reopened = JsonFileKeyValueStore(path)
    assert reopened.get_item("tasks") is None
    assert reopened.get_item("customCategories") == '[{"name": "garden", "color": "#34C759"}]'
    assert not path.with_suffix(".tmp").exists()


def test_json_file_store_rejects_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text("[1, 2, 3]", "utf-8")

    with pytest.raises(PersistenceError):
        JsonFileKeyValueStore(path).get_item("tasks")
