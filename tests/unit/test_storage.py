# =============================================================================
# UNIT TESTS - Idempotency Store
# =============================================================================

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from collector.storage import JsonFileStore, MemoryStore, SEEN_SENTINEL
from shared.exceptions import StoreError


# =============================================================================
# MEMORY STORE
# =============================================================================

class TestMemoryStore:

    def test_unknown_key_is_none(self):
        assert MemoryStore().get("42") is None

    def test_put_then_get(self):
        store = MemoryStore()
        store.put("42", "x")
        assert store.get("42") == "x"

    def test_mark_seen_uses_sentinel(self):
        store = MemoryStore()
        assert not store.is_seen("42")
        store.mark_seen("42")
        assert store.is_seen("42")
        assert store.get("42") == SEEN_SENTINEL

    def test_initial_contents(self):
        store = MemoryStore({"0xabc": SEEN_SENTINEL})
        assert store.is_seen("0xabc")
        assert not store.is_seen("42")


# =============================================================================
# JSON FILE STORE
# =============================================================================

class TestJsonFileStore:

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileStore(tmp_path / "ledger.json")
        assert store.get("42") is None
        assert not (tmp_path / "ledger.json").exists()

    def test_put_creates_file_and_parents(self, tmp_path):
        path = tmp_path / "nested" / "ledger.json"
        store = JsonFileStore(path)
        store.mark_seen("42")

        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == {"42": SEEN_SENTINEL}

    def test_survives_new_instance(self, tmp_path):
        """A restarted process sees what the previous one recorded."""
        path = tmp_path / "ledger.json"
        JsonFileStore(path).mark_seen("42")
        JsonFileStore(path).mark_seen("0xdeadbeef")

        reopened = JsonFileStore(path)
        assert reopened.is_seen("42")
        assert reopened.is_seen("0xdeadbeef")
        assert not reopened.is_seen("43")

    def test_ids_are_not_reformatted(self, tmp_path):
        store = JsonFileStore(tmp_path / "ledger.json")
        store.mark_seen("0xABC")
        assert store.is_seen("0xABC")
        assert not store.is_seen("0xabc")

    def test_reads_external_changes(self, tmp_path):
        path = tmp_path / "ledger.json"
        store = JsonFileStore(path)
        store.mark_seen("1")
        path.write_text(json.dumps({"1": SEEN_SENTINEL, "2": SEEN_SENTINEL}), encoding="utf-8")
        assert store.is_seen("2")

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path / "ledger.json")
        for i in range(3):
            store.mark_seen(str(i))
        assert [p.name for p in tmp_path.iterdir()] == ["ledger.json"]

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreError):
            JsonFileStore(path).is_seen("42")

    def test_non_object_file_raises(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(StoreError):
            JsonFileStore(path).get("42")
