# =============================================================================
# order_core/offline/__init__.py
# Offline-first storage for the order-entry app
# =============================================================================
"""
Offline-first storage layer.

Architecture:
------------
    LoginResolver / screens
            │
            ▼
    ┌──────────────┐   prepare()   ┌──────────────┐
    │  TableCache  │◄──────────────│ CacheWarmer  │◄── RemoteSource (Supabase)
    └──────────────┘               └──────────────┘
            │
            ▼
    ┌──────────────────────────────────────────┐
    │ DocumentStore (SQLite | no-op fallback)  │
    └──────────────────────────────────────────┘

    SafeStorage holds session fields; ConnectionManager samples
    reachability.

Usage:
------
from order_core.offline import open_document_store, TableCache

store = open_document_store("local_data/offline_db.sqlite3")
cache = TableCache(store)
teams = cache.get("teams")
"""

from order_core.offline.local_document_store import (
    DocumentStore,
    NullDocumentStore,
    Record,
    SQLiteDocumentStore,
    open_document_store,
)

from order_core.offline.table_cache import TableCache

from order_core.offline.cache_warmer import CacheWarmer, WarmupResult

from order_core.offline.safe_storage import (
    KeyValueBackend,
    MemoryKeyValueBackend,
    SafeStorage,
    SQLiteKeyValueBackend,
)

from order_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

__all__ = [
    # Local Document Store
    "DocumentStore",
    "NullDocumentStore",
    "Record",
    "SQLiteDocumentStore",
    "open_document_store",
    # Table Cache
    "TableCache",
    # Cache Warmer
    "CacheWarmer",
    "WarmupResult",
    # Safe Key-Value Store
    "KeyValueBackend",
    "MemoryKeyValueBackend",
    "SafeStorage",
    "SQLiteKeyValueBackend",
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
]
