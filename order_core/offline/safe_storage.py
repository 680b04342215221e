# =============================================================================
# order_core/offline/safe_storage.py
# Key/value storage that never raises
# =============================================================================
"""
SafeStorage - wrapper around persistent key/value storage for session
fields.

Availability is probed once, at construction, with a write/delete
round-trip. When the probe fails every operation becomes a silent no-op:
writes vanish and reads return None.
"""

from __future__ import annotations
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Union
import logging

logger = logging.getLogger(__name__)

PROBE_KEY = "__storage_test__"


class KeyValueBackend(ABC):
    """Raw key/value storage; may raise on any call."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    def set_many(self, items: Mapping[str, str]) -> None:
        for key, value in items.items():
            self.set(key, value)

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryKeyValueBackend(KeyValueBackend):
    """Process-local storage; nothing survives a restart."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def set_many(self, items: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class SQLiteKeyValueBackend(KeyValueBackend):
    """Settings table in its own SQLite file."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._schema_ready = False

    def _get_connection(self) -> sqlite3.Connection:
        if getattr(self._local, "connection", None) is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._local.connection = sqlite3.connect(str(self.db_path), timeout=30)
        conn = self._local.connection
        if not self._schema_ready:
            conn.execute(self.SCHEMA)
            conn.commit()
            self._schema_ready = True
        return conn

    @contextmanager
    def transaction(self):
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def get(self, key: str) -> Optional[str]:
        row = self._get_connection().execute(
            "SELECT value FROM app_settings WHERE key = ?", [key]
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, items: Mapping[str, str]) -> None:
        """Write all items in one transaction."""
        now = datetime.now().isoformat()
        with self.transaction() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)",
                [(key, value, now) for key, value in items.items()],
            )

    def remove(self, key: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM app_settings WHERE key = ?", [key])

    def clear(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM app_settings")


class SafeStorage:
    """
    Key/value store whose operations never raise.

    Usage:
        storage = SafeStorage(SQLiteKeyValueBackend(path))
        storage.set("selected_team_code", "10")
        storage.get("selected_team_code")  # "10", or None if unavailable
    """

    def __init__(self, backend: Optional[KeyValueBackend]):
        self._backend = backend
        self._available = self._probe()

    def _probe(self) -> bool:
        if self._backend is None:
            return False
        try:
            self._backend.set(PROBE_KEY, "test")
            self._backend.remove(PROBE_KEY)
            return True
        except Exception as e:
            logger.warning(f"Storage not available (restricted environment): {e}")
            return False

    def is_available(self) -> bool:
        return self._available

    def get(self, key: str) -> Optional[str]:
        if not self._available:
            return None
        try:
            return self._backend.get(key)
        except Exception as e:
            logger.debug(f"Storage read of {key} failed: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        if not self._available:
            return
        try:
            self._backend.set(key, value)
        except Exception as e:
            logger.debug(f"Storage write of {key} failed: {e}")

    def set_many(self, items: Mapping[str, str]) -> bool:
        """
        Write several keys as one batch.

        Returns:
            True if the batch was written
        """
        if not self._available:
            return False
        try:
            self._backend.set_many(dict(items))
            return True
        except Exception as e:
            logger.debug(f"Storage batch write failed: {e}")
            return False

    def remove(self, key: str) -> None:
        if not self._available:
            return
        try:
            self._backend.remove(key)
        except Exception as e:
            logger.debug(f"Storage removal of {key} failed: {e}")

    def clear(self) -> None:
        if not self._available:
            return
        try:
            self._backend.clear()
        except Exception as e:
            logger.debug(f"Storage clear failed: {e}")
