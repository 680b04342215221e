# =============================================================================
# tests/unit/test_local_document_store.py
# Unit Tests for the Local Document Store
# =============================================================================

import sqlite3
import threading

import pandas as pd
import pytest

from order_core.errors import RevisionConflictError, StorageError
from order_core.offline.local_document_store import (
    NULL_REVISION,
    NullDocumentStore,
    Record,
    SQLiteDocumentStore,
    index_name,
    open_document_store,
    revision_generation,
)


class TestSave:
    """Create and update-in-place"""

    def test_save_generates_id_and_revision(self, store):
        record = store.save("clients", {"name": "ACME"})

        assert record.id
        assert record.revision
        assert record.table == "clients"
        assert record.created_at == record.updated_at

    def test_save_then_get_returns_same_payload(self, store):
        saved = store.save("clients", {"name": "ACME", "tags": ["a", "b"]}, record_id="c1")
        loaded = store.get_by_id("clients", "c1")

        assert loaded.payload == {"name": "ACME", "tags": ["a", "b"]}
        assert loaded.table == "clients"
        assert loaded.revision == saved.revision
        assert loaded.updated_at >= saved.created_at

    def test_id_taken_from_payload(self, store):
        record = store.save("clients", {"_id": "from-payload", "name": "ACME"})
        assert record.id == "from-payload"
        assert store.get_by_id("clients", "from-payload") is not None

    def test_created_at_preserved_across_updates(self, store):
        first = store.save("clients", {"v": 1}, record_id="c1")
        second = store.save("clients", {"v": 2}, record_id="c1")
        third = store.save("clients", {"v": 3}, record_id="c1")

        assert second.created_at == first.created_at
        assert third.created_at == first.created_at
        assert third.updated_at >= second.updated_at >= first.updated_at
        assert store.get_by_id("clients", "c1").payload == {"v": 3}

    @pytest.mark.parametrize("token,expected", [
        ("3-abc", 3),
        (None, 0),
        ("", 0),
        ("garbage", 0),
        ("x-1", 0),
    ])
    def test_revision_generation_tolerates_malformed_tokens(self, token, expected):
        assert revision_generation(token) == expected

    def test_revision_supersedes_previous(self, store):
        first = store.save("clients", {"v": 1}, record_id="c1")
        second = store.save("clients", {"v": 2}, record_id="c1")

        assert second.revision != first.revision
        assert revision_generation(second.revision) == revision_generation(first.revision) + 1

    def test_update_with_current_revision(self, store):
        first = store.save("clients", {"v": 1}, record_id="c1")
        second = store.save("clients", {"v": 2}, record_id="c1", revision=first.revision)
        assert second.payload == {"v": 2}

    def test_stale_revision_is_rejected(self, store):
        first = store.save("clients", {"v": 1}, record_id="c1")
        store.save("clients", {"v": 2}, record_id="c1")

        with pytest.raises(RevisionConflictError):
            store.save("clients", {"v": 3}, record_id="c1", revision=first.revision)
        assert store.get_by_id("clients", "c1").payload == {"v": 2}

    def test_table_is_immutable_for_an_id(self, store):
        store.save("clients", {"v": 1}, record_id="shared")

        with pytest.raises(RevisionConflictError):
            store.save("products", {"v": 2}, record_id="shared")
        assert store.get_by_id("clients", "shared").payload == {"v": 1}

    def test_unserializable_payload_raises_storage_error(self, store):
        with pytest.raises(StorageError):
            store.save("clients", {"bad": object()})

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), -float("inf")])
    def test_non_finite_float_is_rejected(self, store, bad):
        with pytest.raises(StorageError):
            store.save("products", {"sku": "A", "price": bad})
        assert store.get_all("products") == []

    def test_numpy_nan_is_rejected(self, store):
        import numpy as np

        with pytest.raises(StorageError):
            store.save("products", {"price": np.float32("nan")})

    def test_numpy_values_are_stored(self, store):
        import numpy as np

        record = store.save("products", {"qty": np.int64(3), "price": np.float64(2.5)})
        assert store.get_by_id("products", record.id).payload == {"qty": 3, "price": 2.5}


class TestReads:
    """get_by_id / get_all / find / list_tables"""

    def test_get_by_id_missing_returns_none(self, store):
        assert store.get_by_id("clients", "nope") is None

    def test_get_by_id_other_table_returns_none(self, store):
        store.save("clients", {"v": 1}, record_id="c1")
        assert store.get_by_id("products", "c1") is None

    def test_get_all_is_scoped_to_table(self, store):
        store.save("clients", {"n": 1})
        store.save("clients", {"n": 2})
        store.save("products", {"n": 3})

        assert sorted(r.payload["n"] for r in store.get_all("clients")) == [1, 2]
        assert store.count("products") == 1
        assert store.get_all("unknown") == []

    def test_find_by_payload_fields(self, store):
        store.save("users", {"user_id": "555", "team_id": 10})
        store.save("users", {"user_id": "555", "team_id": 20})
        store.save("users", {"user_id": "777", "team_id": 10})

        found = store.find("users", {"user_id": "555", "team_id": 10})
        assert len(found) == 1
        assert found[0].payload == {"user_id": "555", "team_id": 10}

    def test_find_accepts_payload_prefix_and_eq(self, store):
        store.save("users", {"user_id": "555"})
        assert len(store.find("users", {"payload.user_id": {"$eq": "555"}})) == 1

    def test_find_nested_and_null_fields(self, store):
        store.save("clients", {"address": {"city": "Recife"}, "email": None})
        store.save("clients", {"address": {"city": "Natal"}, "email": "x@y.z"})

        assert len(store.find("clients", {"address.city": "Recife"})) == 1
        assert len(store.find("clients", {"email": None})) == 1
        assert len(store.find("clients", {"missing": None})) == 2

    def test_rejected_nan_does_not_hide_table_from_find(self, store):
        with pytest.raises(StorageError):
            store.save("products", {"sku": "A", "price": float("nan")})
        b = store.save("products", {"sku": "B", "price": 1.0})

        assert [r.id for r in store.find("products", {"sku": "B"})] == [b.id]

    def test_find_on_boolean_field(self, store):
        store.save("products", {"active": True})
        store.save("products", {"active": False})
        assert len(store.find("products", {"active": True})) == 1

    def test_find_on_record_metadata(self, store):
        record = store.save("clients", {"n": 1}, record_id="c1")
        store.save("clients", {"n": 2}, record_id="c2")

        found = store.find("clients", {"id": "c1"})
        assert [r.id for r in found] == ["c1"]
        assert store.find("clients", {"updatedAt": record.updated_at.isoformat()})[0].id == "c1"

    def test_list_tables(self, store):
        store.save("clients", {})
        store.save("products", {})
        store.save("products", {})
        assert store.list_tables() == {"clients", "products"}

    def test_search_with_predicate(self, store):
        store.save("products", {"price": 5})
        store.save("products", {"price": 50})
        cheap = store.search("products", lambda p: p["price"] < 10)
        assert [r.payload["price"] for r in cheap] == [5]

    def test_to_dataframe(self, store):
        store.save("products", {"sku": "A", "price": 1.0}, record_id="p1")
        store.save("products", {"sku": "B", "price": 2.0}, record_id="p2")

        df = store.to_dataframe("products")
        assert isinstance(df, pd.DataFrame)
        assert len(df) == 2
        assert {"sku", "price", "_id", "_rev", "createdAt", "updatedAt"} <= set(df.columns)

    def test_read_failures_degrade_to_empty(self, store, monkeypatch):
        store.save("clients", {"n": 1}, record_id="c1")

        def broken():
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "_get_connection", broken)

        assert store.get_all("clients") == []
        assert store.find("clients", {"n": 1}) == []
        assert store.get_by_id("clients", "c1") is None
        assert store.list_tables() == set()
        assert store.info() is None


class TestRemove:
    """remove / delete / clear"""

    def test_remove_nonexistent_returns_false(self, store):
        assert store.remove("clients", "nope") is False

    def test_remove_true_once(self, store):
        store.save("clients", {"n": 1}, record_id="c1")

        assert store.remove("clients", "c1") is True
        assert store.remove("clients", "c1") is False
        assert store.get_by_id("clients", "c1") is None

    def test_remove_wrong_table_returns_false(self, store):
        store.save("clients", {"n": 1}, record_id="c1")
        assert store.remove("products", "c1") is False
        assert store.get_by_id("clients", "c1") is not None

    def test_delete_ignores_table(self, store):
        store.save("clients", {"n": 1}, record_id="c1")
        assert store.delete("c1") is True
        assert store.delete("c1") is False

    def test_clear_returns_count(self, store):
        for n in range(3):
            store.save("clients", {"n": n})
        store.save("products", {"n": 99})

        assert store.clear("clients") == 3
        assert store.get_all("clients") == []
        assert store.count("products") == 1


class TestBulk:
    """bulk_save / bulk_delete"""

    def test_bulk_save_new_records(self, store):
        records = [
            {"table": "clients", "payload": {"n": n}, "_id": f"c{n}"}
            for n in range(5)
        ]
        assert store.bulk_save(records) == 5
        for n in range(5):
            assert store.get_by_id("clients", f"c{n}").payload == {"n": n}

    def test_bulk_save_counts_only_successes(self, store):
        current = store.save("clients", {"n": 0}, record_id="c0")
        store.save("clients", {"n": 1}, record_id="c1")

        records = [
            Record("c0", current.revision, "clients", {"n": 10}, current.created_at, current.updated_at),
            {"table": "clients", "payload": {"n": 11}, "_id": "c1"},   # no revision
            {"table": "clients", "payload": {"n": 12}, "_id": "c2"},
            {"payload": {"n": 13}},                                    # no table
        ]
        saved = store.bulk_save(records)

        assert saved == 2
        assert store.get_by_id("clients", "c0").payload == {"n": 10}
        assert store.get_by_id("clients", "c1").payload == {"n": 1}
        assert store.get_by_id("clients", "c2").payload == {"n": 12}

    def test_bulk_save_counts_nan_payload_as_failed(self, store):
        saved = store.bulk_save([
            {"table": "products", "payload": {"sku": "A", "price": float("nan")}},
            {"table": "products", "payload": {"sku": "B", "price": 1.0}},
        ])

        assert saved == 1
        assert len(store.find("products", {"sku": "B"})) == 1

    def test_bulk_delete_ignores_revisions(self, store):
        stale = store.save("clients", {"n": 1}, record_id="c1")
        store.save("clients", {"n": 2}, record_id="c1")
        store.save("clients", {"n": 3}, record_id="c2")

        assert store.bulk_delete([stale, {"_id": "c2"}, "missing"]) is True
        assert store.get_all("clients") == []


class TestIndexes:
    """create_indexes / init / wipe_all"""

    def _indexes(self, store):
        rows = store._get_connection().execute(
            "SELECT name, sql FROM sqlite_master WHERE type = 'index' AND tbl_name = 'documents'"
        ).fetchall()
        return {row["name"]: row["sql"] for row in rows}

    def test_init_creates_minimum_indexes(self, store):
        indexes = self._indexes(store)

        assert index_name(["table"], ["table_name"]) in indexes
        assert index_name(["table", "updatedAt"], ["table_name", "updated_at"]) in indexes
        assert store.info()["indexes"] == [["table"], ["table", "updatedAt"]]

    def test_create_indexes_is_idempotent(self, store):
        store.create_indexes(["table", "user_id"])
        store.create_indexes(["table", "user_id"])
        store.init()

        name = index_name(["table", "user_id"], ["table_name", "json_extract(payload, '$.user_id')"])
        assert name in self._indexes(store)
        assert store.info()["indexes"].count(["table", "user_id"]) == 1

    def test_similar_field_names_get_separate_indexes(self, store):
        before = self._indexes(store)

        store.create_indexes(["a.b"])
        store.create_indexes(["a_b"])

        indexes = self._indexes(store)
        assert len(indexes) == len(before) + 2
        sql = " ".join(indexes.values())
        assert "'$.a.b'" in sql
        assert "'$.a_b'" in sql

    def test_invalid_index_field_is_ignored(self, store):
        before = self._indexes(store)

        store.create_indexes(["table", "bad field; DROP"])

        assert self._indexes(store) == before
        assert ["table", "bad field; DROP"] not in store.info()["indexes"]

    def test_wipe_all(self, store):
        store.save("clients", {"n": 1})
        store.save("products", {"n": 2})
        store.create_indexes(["sku"])

        assert store.wipe_all() is True
        assert store.list_tables() == set()
        assert index_name(["table"], ["table_name"]) in self._indexes(store)
        assert ["sku"] not in store.info()["indexes"]
        assert store.info()["doc_count"] == 0


class TestConcurrency:
    """Concurrent writers"""

    def test_concurrent_saves_of_different_ids(self, store):
        def worker(n):
            for i in range(10):
                store.save("orders", {"worker": n, "i": i}, record_id=f"{n}-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.count("orders") == 60

    def test_concurrent_saves_of_same_id_are_serialized(self, store):
        store.save("orders", {"v": -1}, record_id="o1")

        def worker(n):
            for i in range(10):
                store.save("orders", {"v": n * 100 + i}, record_id="o1")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = store.get_by_id("orders", "o1")
        assert revision_generation(record.revision) == 51
        assert record.created_at <= record.updated_at
        assert isinstance(record.payload["v"], int)


class TestStorageUnavailable:
    """No-op engine selection"""

    def test_no_path_gives_null_store(self):
        assert isinstance(open_document_store(None), NullDocumentStore)

    def test_unopenable_path_gives_null_store(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")

        db = open_document_store(blocker / "offline_db.sqlite3")
        assert isinstance(db, NullDocumentStore)
        assert db.is_persistent is False

    def test_real_store_is_persistent(self, store):
        assert isinstance(store, SQLiteDocumentStore)
        assert store.is_persistent

    def test_null_store_answers_without_raising(self):
        db = NullDocumentStore()

        record = db.save("clients", {"n": 1}, record_id="c1")
        assert record.revision == NULL_REVISION
        assert db.get_by_id("clients", "c1") is None
        assert db.get_all("clients") == []
        assert db.find("clients", {"n": 1}) == []
        assert db.remove("clients", "c1") is False
        assert db.clear("clients") == 0
        assert db.bulk_save([{"table": "clients", "payload": {}}]) == 1
        assert db.bulk_delete(["c1"]) is True
        assert db.list_tables() == set()
        assert db.wipe_all() is True
        assert db.to_dataframe("clients").empty

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "offline_db.sqlite3"
        first = open_document_store(path)
        first.save("clients", {"n": 1}, record_id="c1")
        first.close()

        second = open_document_store(path)
        assert second.get_by_id("clients", "c1").payload == {"n": 1}
