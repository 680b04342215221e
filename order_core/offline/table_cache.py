# =============================================================================
# order_core/offline/table_cache.py
# Last-known snapshot of whole tables, for offline reads
# =============================================================================
"""
TableCache - named-collection snapshots on top of the document store.

Each table is cached as a single record whose payload is the full list
of rows. The record id is derived from the table name, so ``set`` always
overwrites the same record.

Usage:
    cache = TableCache(store)
    cache.set("teams", rows)
    teams = cache.get("teams")  # None if never populated
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional, Sequence
import logging

import pandas as pd

from order_core.errors import StorageError
from order_core.offline.local_document_store import DocumentStore

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "snapshot:"


def snapshot_id(table: str) -> str:
    """Stable record id of the snapshot for ``table``."""
    return f"{SNAPSHOT_PREFIX}{table}"


class TableCache:
    """Whole-table snapshots stored in a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def set(self, table: str, rows: Sequence[Any]) -> bool:
        """
        Replace the snapshot of ``table`` with ``rows``.

        Returns:
            True if the snapshot was written
        """
        rows = list(rows)
        try:
            self.store.save(table, rows, record_id=snapshot_id(table))
        except (StorageError, ValueError) as e:
            logger.error(f"Could not cache table {table}: {e}")
            return False

        logger.debug(f"Cached {len(rows)} rows for table {table}")
        return True

    def get(self, table: str) -> Optional[List[Any]]:
        """Most recent snapshot of ``table``, or None if never populated."""
        record = self.store.get_by_id(table, snapshot_id(table))
        if record is None:
            return None
        if not isinstance(record.payload, list):
            logger.warning(f"Ignoring malformed snapshot for table {table}")
            return None
        return record.payload

    def updated_at(self, table: str) -> Optional[datetime]:
        """When the snapshot of ``table`` was last written."""
        record = self.store.get_by_id(table, snapshot_id(table))
        return record.updated_at if record else None

    def remove(self, table: str) -> bool:
        return self.store.remove(table, snapshot_id(table))

    def frame(self, table: str) -> pd.DataFrame:
        """Snapshot of ``table`` as a DataFrame (empty if not cached)."""
        rows = self.get(table)
        if not rows:
            return pd.DataFrame()
        return pd.DataFrame(rows)
