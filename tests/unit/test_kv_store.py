"""Tests for photorestorer.core.kv_store — JSON persistence with fallback."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from photorestorer.core.kv_store import JsonFileStore, MemoryStore


class TestMemoryStore:
    def test_missing_key_returns_default(self):
        assert MemoryStore().get("nope", []) == []

    def test_values_are_copied(self):
        store = MemoryStore()
        value = ["a"]
        store.set("k", value)
        value.append("b")
        fetched = store.get("k", [])
        fetched.append("c")
        assert store.get("k", []) == ["a"]


class TestJsonFileStore:
    def test_round_trip_through_disk(self, temp_dir: Path):
        JsonFileStore(temp_dir).set("saved-prompts", ["restore color"])
        assert json.loads((temp_dir / "saved-prompts.json").read_text()) == ["restore color"]
        assert JsonFileStore(temp_dir).get("saved-prompts", []) == ["restore color"]

    def test_missing_file_returns_default(self, temp_dir: Path):
        assert JsonFileStore(temp_dir).get("restoration-history", []) == []

    def test_corrupt_file_returns_default(self, temp_dir: Path):
        (temp_dir / "restoration-history.json").write_text("{not json")
        assert JsonFileStore(temp_dir).get("restoration-history", []) == []

    def test_creates_directory_on_write(self, temp_dir: Path):
        store = JsonFileStore(temp_dir / "nested" / "data")
        store.set("k", {"a": 1})
        assert (temp_dir / "nested" / "data" / "k.json").exists()

    def test_write_failure_is_swallowed_and_value_kept(self, temp_dir: Path, caplog):
        store = JsonFileStore(temp_dir)
        with patch("builtins.open", side_effect=OSError("disk full")):
            store.set("k", ["kept"])
        assert store.get("k", []) == ["kept"]
        assert "disk full" in caplog.text

    def test_unserialisable_value_is_swallowed(self, temp_dir: Path):
        store = JsonFileStore(temp_dir)
        store.set("k", {"bad": object()})
        assert not (temp_dir / "k.json").exists()

    def test_last_write_wins(self, temp_dir: Path):
        store = JsonFileStore(temp_dir)
        store.set("k", [1])
        store.set("k", [2])
        assert JsonFileStore(temp_dir).get("k", []) == [2]

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "with space"])
    def test_unsafe_keys_rejected(self, temp_dir: Path, key):
        with pytest.raises(ValueError):
            JsonFileStore(temp_dir).path_for(key)
