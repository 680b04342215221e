# =============================================================================
# tests/unit/test_safe_storage.py
# Unit Tests for SafeStorage
# =============================================================================

import pytest

from order_core.offline.safe_storage import (
    PROBE_KEY,
    KeyValueBackend,
    MemoryKeyValueBackend,
    SafeStorage,
    SQLiteKeyValueBackend,
)


class BrokenBackend(KeyValueBackend):
    """Raises on every call, like a storage-denied sandbox"""

    def get(self, key):
        raise PermissionError("storage denied")

    def set(self, key, value):
        raise PermissionError("storage denied")

    def remove(self, key):
        raise PermissionError("storage denied")

    def clear(self):
        raise PermissionError("storage denied")


class FlakyBackend(MemoryKeyValueBackend):
    """Passes the probe, then fails reads and writes"""

    def __init__(self):
        super().__init__()
        self.broken = False

    def get(self, key):
        if self.broken:
            raise OSError("disk gone")
        return super().get(key)

    def set_many(self, items):
        if self.broken:
            raise OSError("disk gone")
        super().set_many(items)


class TestAvailableStorage:
    """Working backend"""

    def test_probe_key_is_cleaned_up(self):
        backend = MemoryKeyValueBackend()
        storage = SafeStorage(backend)

        assert storage.is_available()
        assert backend.get(PROBE_KEY) is None

    def test_set_get_remove(self, safe_storage):
        safe_storage.set("selected_team_code", "10")
        assert safe_storage.get("selected_team_code") == "10"

        safe_storage.remove("selected_team_code")
        assert safe_storage.get("selected_team_code") is None

    def test_set_many_and_clear(self, safe_storage):
        assert safe_storage.set_many({"a": "1", "b": "2"}) is True
        assert safe_storage.get("b") == "2"

        safe_storage.clear()
        assert safe_storage.get("a") is None

    def test_errors_after_probe_are_swallowed(self):
        backend = FlakyBackend()
        storage = SafeStorage(backend)
        backend.broken = True

        assert storage.get("a") is None
        assert storage.set_many({"a": "1"}) is False


class TestUnavailableStorage:
    """Probe failed: every call is a silent no-op"""

    @pytest.mark.parametrize("backend", [None, BrokenBackend()])
    def test_operations_never_raise(self, backend):
        storage = SafeStorage(backend)

        assert storage.is_available() is False
        storage.set("k", "v")
        storage.remove("k")
        storage.clear()
        assert storage.get("k") is None
        assert storage.set_many({"k": "v"}) is False


class TestSQLiteKeyValueBackend:
    """Persistent backend"""

    def test_values_survive_reopen(self, tmp_path):
        path = tmp_path / "storage.sqlite3"
        SafeStorage(SQLiteKeyValueBackend(path)).set_many({"a": "1", "b": "2"})

        reopened = SafeStorage(SQLiteKeyValueBackend(path))
        assert reopened.get("a") == "1"
        assert reopened.get("b") == "2"

    def test_overwrite_and_remove(self, tmp_path):
        storage = SafeStorage(SQLiteKeyValueBackend(tmp_path / "storage.sqlite3"))

        storage.set("a", "1")
        storage.set("a", "2")
        assert storage.get("a") == "2"

        storage.remove("a")
        assert storage.get("a") is None

    def test_unwritable_location_is_unavailable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        storage = SafeStorage(SQLiteKeyValueBackend(blocker / "storage.sqlite3"))
        assert storage.is_available() is False
        assert storage.get("a") is None
