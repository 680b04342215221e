# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import threading
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import MagicMock

import pytest

from order_core.data.remote_source import RemoteSource
from order_core.errors import RemoteQueryError


# =============================================================================
# FAKE REMOTE SOURCE
# =============================================================================

class FakeRemoteSource(RemoteSource):
    """
    In-memory remote source.

    Collections listed in ``failing`` raise RemoteQueryError on every query.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.failing = set()
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def _check(self, collection, filters=None):
        if collection in self.failing:
            raise RemoteQueryError("connection reset", collection=collection, filters=filters)

    @staticmethod
    def _match(row, filters: Mapping[str, Any]) -> bool:
        return all(str(row.get(k)) == str(v) for k, v in filters.items())

    def query_all(self, collection, order_by=None):
        self._record("query_all", collection)
        self._check(collection)
        rows = list(self.tables.get(collection, []))
        if order_by:
            rows.sort(key=lambda r: r.get(order_by))
        return rows

    def query_where(self, collection, filters):
        self._record("query_where", collection, dict(filters))
        self._check(collection, dict(filters))
        return [r for r in self.tables.get(collection, []) if self._match(r, filters)]

    def query_single(self, collection, filters):
        self._record("query_single", collection, dict(filters))
        self._check(collection, dict(filters))
        rows = self.query_where(collection, filters)
        return rows[0] if rows else None


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_teams():
    return [
        {"id": "b7c1", "code": 20, "name": "South"},
        {"id": "a3f9", "code": 10, "name": "North"},
    ]


@pytest.fixture
def sample_users():
    return [
        {"id": 1, "user_id": "555", "team_id": 10, "name": "Ana Souza"},
        {"id": 2, "user_id": "777", "team_id": 20, "name": "Bruno Lima"},
    ]


@pytest.fixture
def sample_products():
    return [
        {"id": 1, "sku": "P-001", "description": "Widget", "price": 9.9},
        {"id": 2, "sku": "P-002", "description": "Gadget", "price": 19.5},
    ]


@pytest.fixture
def remote(sample_teams, sample_users, sample_products):
    return FakeRemoteSource({
        "teams": sample_teams,
        "users": sample_users,
        "products": sample_products,
    })


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def store(tmp_path):
    from order_core.offline.local_document_store import open_document_store

    db = open_document_store(tmp_path / "offline_db.sqlite3")
    yield db
    if hasattr(db, "close"):
        db.close()


@pytest.fixture
def table_cache(store):
    from order_core.offline.table_cache import TableCache
    return TableCache(store)


@pytest.fixture
def safe_storage():
    from order_core.offline.safe_storage import MemoryKeyValueBackend, SafeStorage
    return SafeStorage(MemoryKeyValueBackend())


@pytest.fixture
def session_store(safe_storage):
    from order_core.auth.session_store import SessionStore
    return SessionStore(safe_storage)


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    return mock_client


@pytest.fixture
def make_remote():
    """Factory for FakeRemoteSource instances"""
    return FakeRemoteSource
