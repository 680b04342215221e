# =============================================================================
# order_core/auth/team_directory.py
# Team list for the login screen, with offline fallback
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List

from order_core.data.remote_source import RemoteSource
from order_core.offline.table_cache import TableCache
from order_core.services.base_service import BaseService, ServiceResult

MSG_NO_CACHED_TEAMS = (
    "You are offline and no teams are cached. "
    "Connect to the internet to log in for the first time."
)
MSG_TEAMS_UNAVAILABLE = "Teams could not be loaded. Check your connection."


class TeamDirectory(BaseService):
    """Loads teams from the remote source, falling back to the cache."""

    TABLE = "teams"

    def __init__(self, remote: RemoteSource, table_cache: TableCache):
        super().__init__()
        self.remote = remote
        self.table_cache = table_cache

    def _from_cache(self, failure_message: str) -> ServiceResult:
        cached = self.table_cache.get(self.TABLE)
        if cached:
            self.logger.info(f"Using {len(cached)} cached teams")
            return ServiceResult.ok(cached, source="cache")
        self.logger.warning("No teams in cache")
        return ServiceResult.fail(failure_message, error_code="NO_TEAMS", source="cache")

    def load(self, online: bool) -> ServiceResult:
        """
        Teams ordered by code.

        Online, a non-empty remote list refreshes the cache. Offline or on
        a remote error the cached list is used.
        """
        if not online:
            return self._from_cache(MSG_NO_CACHED_TEAMS)

        fetched = self.attempt(
            "Loading teams", self.remote.query_all, self.TABLE, order_by="code", source="remote"
        )
        if not fetched:
            self.logger.warning(f"Falling back to cached teams ({fetched.error_code})")
            return self._from_cache(MSG_TEAMS_UNAVAILABLE)

        teams: List[Dict[str, Any]] = fetched.data or []

        if teams:
            self.table_cache.set(self.TABLE, teams)
            self.logger.info(f"{len(teams)} teams loaded and cached")
        else:
            self.logger.warning("No teams returned by the remote source")
        return fetched
