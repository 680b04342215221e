# =============================================================================
# order_core/bootstrap.py
# Builds the process-wide services once, at startup
# =============================================================================
"""
Usage:
    from order_core.bootstrap import create_services

    services = create_services()
    result = services.login("10", "555")
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional
import logging

from order_core.auth.login_resolver import LoginResolver, LoginResult
from order_core.auth.session_store import SessionStore
from order_core.auth.team_directory import TeamDirectory
from order_core.config import Settings, load_settings
from order_core.errors import safe_execute
from order_core.data.remote_source import (
    RemoteSource,
    SupabaseRemoteSource,
    UnavailableRemoteSource,
    get_supabase_client,
)
from order_core.offline.cache_warmer import CacheWarmer
from order_core.offline.connection_manager import ConnectionManager
from order_core.offline.local_document_store import DocumentStore, open_document_store
from order_core.offline.safe_storage import SafeStorage, SQLiteKeyValueBackend
from order_core.offline.table_cache import TableCache

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Everything the screens need, wired together."""
    settings: Settings
    store: DocumentStore
    table_cache: TableCache
    remote: RemoteSource
    warmer: CacheWarmer
    storage: SafeStorage
    session_store: SessionStore
    resolver: LoginResolver
    teams: TeamDirectory
    connection: ConnectionManager

    def is_online(self) -> bool:
        """One connectivity sample; a failing probe counts as offline."""
        return bool(safe_execute(
            self.connection.sample,
            default=False,
            error_message="Connectivity check failed",
        ))

    def login(self, team_code: Any, representative_code: Any, online: Optional[bool] = None) -> LoginResult:
        """Login, sampling connectivity once when ``online`` is not given."""
        if online is None:
            online = self.is_online()
        return self.resolver.login(team_code, representative_code, online)


def create_remote_source(settings: Settings) -> RemoteSource:
    client = get_supabase_client(settings)
    if client is None:
        return UnavailableRemoteSource()
    return SupabaseRemoteSource(client)


def create_services(
    settings: Optional[Settings] = None,
    remote: Optional[RemoteSource] = None,
    connection: Optional[ConnectionManager] = None,
) -> AppServices:
    """
    Build all services.

    Args:
        settings: Defaults to load_settings()
        remote: Override the Supabase-backed source (tests, scripts)
        connection: Override the socket probe
    """
    settings = settings or load_settings()
    remote = remote or create_remote_source(settings)

    store = open_document_store(settings.documents_path)
    table_cache = TableCache(store)
    warmer = CacheWarmer(remote, table_cache, max_workers=settings.warmup_workers)
    storage = SafeStorage(SQLiteKeyValueBackend(settings.storage_path))
    session_store = SessionStore(storage)

    services = AppServices(
        settings=settings,
        store=store,
        table_cache=table_cache,
        remote=remote,
        warmer=warmer,
        storage=storage,
        session_store=session_store,
        resolver=LoginResolver(
            remote,
            table_cache,
            session_store,
            warmer=warmer,
            warmup_tables=settings.warmup_tables,
        ),
        teams=TeamDirectory(remote, table_cache),
        connection=connection or ConnectionManager(settings.supabase_url),
    )
    logger.info(
        f"Services ready (persistent store: {store.is_persistent}, "
        f"storage available: {storage.is_available()})"
    )
    return services
