# =============================================================================
# order_core/data/remote_source.py
# Remote collection queries (Supabase)
# =============================================================================
"""
The remote source of truth, seen only as named collections of rows.

Every query either returns rows or raises RemoteQueryError; callers never
see the transport's own exceptions.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional
import logging

from order_core.config import Settings
from order_core.errors import RemoteQueryError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def get_supabase_client(settings: Settings):
    """
    Create a Supabase client from settings.

    Returns:
        Supabase client instance or None if not configured
    """
    if not settings.has_remote:
        logger.warning("Supabase credentials not configured - remote queries disabled")
        return None

    try:
        from supabase import create_client, Client

        client: Client = create_client(settings.supabase_url, settings.supabase_key)
        return client
    except Exception as e:
        logger.error(f"Failed to initialize Supabase client: {e}")
        return None


class RemoteSource(ABC):
    """Query capability per named collection."""

    @abstractmethod
    def query_all(self, collection: str, order_by: Optional[str] = None) -> List[Row]:
        """All rows of ``collection``."""

    @abstractmethod
    def query_where(self, collection: str, filters: Mapping[str, Any]) -> List[Row]:
        """Rows of ``collection`` equal to every filter value."""

    @abstractmethod
    def query_single(self, collection: str, filters: Mapping[str, Any]) -> Optional[Row]:
        """First matching row of ``collection``, or None."""


class UnavailableRemoteSource(RemoteSource):
    """Remote source used when no client could be configured."""

    def _fail(self, collection: str, filters: Optional[Mapping[str, Any]] = None):
        raise RemoteQueryError(
            "Remote source is not configured",
            collection=collection,
            filters=dict(filters) if filters else None,
        )

    def query_all(self, collection: str, order_by: Optional[str] = None) -> List[Row]:
        self._fail(collection)

    def query_where(self, collection: str, filters: Mapping[str, Any]) -> List[Row]:
        self._fail(collection, filters)

    def query_single(self, collection: str, filters: Mapping[str, Any]) -> Optional[Row]:
        self._fail(collection, filters)


class SupabaseRemoteSource(RemoteSource):
    """
    Supabase-backed remote source.

    ``query_all`` pages through the table to get past the 1000 row
    limit of the REST API.
    """

    BATCH_SIZE = 1000

    def __init__(self, client):
        self.client = client

    def query_all(self, collection: str, order_by: Optional[str] = None) -> List[Row]:
        all_data: List[Row] = []
        offset = 0

        try:
            while True:
                query = self.client.table(collection).select("*")

                if order_by:
                    query = query.order(order_by)

                response = query.range(offset, offset + self.BATCH_SIZE - 1).execute()

                if not response.data:
                    break
                all_data.extend(response.data)
                # A short page means we've reached the end
                if len(response.data) < self.BATCH_SIZE:
                    break
                offset += self.BATCH_SIZE

        except Exception as e:
            raise RemoteQueryError(
                f"Error fetching data from {collection}: {e}",
                collection=collection,
            ) from e

        logger.debug(f"Fetched {len(all_data)} rows from {collection}")
        return all_data

    def query_where(self, collection: str, filters: Mapping[str, Any]) -> List[Row]:
        try:
            query = self.client.table(collection).select("*")

            for col, val in filters.items():
                query = query.eq(col, val)

            response = query.execute()
        except Exception as e:
            raise RemoteQueryError(
                f"Error querying {collection}: {e}",
                collection=collection,
                filters=dict(filters),
            ) from e

        return list(response.data or [])

    def query_single(self, collection: str, filters: Mapping[str, Any]) -> Optional[Row]:
        try:
            query = self.client.table(collection).select("*")

            for col, val in filters.items():
                query = query.eq(col, val)

            response = query.limit(1).execute()
        except Exception as e:
            raise RemoteQueryError(
                f"Error querying {collection}: {e}",
                collection=collection,
                filters=dict(filters),
            ) from e

        rows = response.data or []
        return rows[0] if rows else None
