# =============================================================================
# order_core/auth/login_resolver.py
# Login with remote-first, local-fallback resolution
# =============================================================================
"""
LoginResolver - the login state machine.

    START ──online──► TRY_REMOTE ──► REMOTE_SUCCESS ──► TERMINAL
      │                   │
      │                   └──► REMOTE_FAIL ──┐
      └──offline─────────────────────────────┴──► TRY_LOCAL ──► LOCAL_SUCCESS ──► TERMINAL
                                                      └──────► LOCAL_FAIL ────► TERMINAL

A remote failure (error raised, or the team cannot be resolved) is never
final: it falls back to the cached ``users`` snapshot. A credential lookup
that completes with zero rows is final.

Usage:
    resolver = LoginResolver(remote, table_cache, session_store, warmer)
    result = resolver.login("10", "555", online=connection.sample())
    if result.success:
        ...
    else:
        show(result.message)
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from order_core.auth.session_store import SessionFields, SessionStore
from order_core.config import DEFAULT_WARMUP_TABLES
from order_core.data.remote_source import RemoteSource
from order_core.offline.cache_warmer import CacheWarmer, WarmupResult
from order_core.offline.table_cache import TableCache
from order_core.services.base_service import BaseService


class LoginState(Enum):
    START = "start"
    TRY_REMOTE = "try_remote"
    REMOTE_SUCCESS = "remote_success"
    REMOTE_FAIL = "remote_fail"
    TRY_LOCAL = "try_local"
    LOCAL_SUCCESS = "local_success"
    LOCAL_FAIL = "local_fail"
    TERMINAL = "terminal"


class LoginOutcome(Enum):
    SUCCESS = "success"
    INVALID_INPUT = "invalidInput"
    INVALID_CREDENTIALS = "invalidCredentials"
    NO_OFFLINE_DATA = "noOfflineData"
    ERROR = "error"


MSG_SELECT_TEAM = "Please select a team."
MSG_ENTER_CODE = "Please enter the representative code."
MSG_NO_OFFLINE_DATA = (
    "You are offline and there is no saved data. "
    "Log in online at least once to use the app offline."
)
MSG_INVALID_CREDENTIALS = "Invalid representative code or team."
MSG_TRANSIENT_ERROR = "Login could not be completed. Please try again."


@dataclass
class LoginResult:
    """Terminal state of one login attempt."""
    outcome: LoginOutcome
    message: Optional[str] = None
    session: Optional[SessionFields] = None
    source: Optional[str] = None  # "remote" | "local"
    trace: List[LoginState] = field(default_factory=list)
    warmup: Optional[threading.Thread] = None

    @property
    def success(self) -> bool:
        return self.outcome is LoginOutcome.SUCCESS


@dataclass
class LoginAttempt:
    """Inputs and intermediate data of one run of the state machine."""
    team_code: str
    representative_code: str
    online: bool
    team: Optional[Dict[str, Any]] = None
    users: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[LoginResult] = None

    def finish(self, outcome: LoginOutcome, message: Optional[str] = None, **kwargs) -> LoginState:
        self.result = LoginResult(outcome=outcome, message=message, **kwargs)
        return LoginState.TERMINAL


def _normalize(value: Any) -> str:
    return "" if value is None else str(value).strip()


def loose_equal(left: Any, right: Any) -> bool:
    """Compare identifiers that may arrive as numbers or as strings."""
    if left is None or right is None:
        return False
    a, b = _normalize(left), _normalize(right)
    if a == b:
        return True
    try:
        return float(a) == float(b)
    except ValueError:
        return False


class LoginResolver(BaseService):
    """Resolves a (team, representative) pair to a session."""

    TEAMS_TABLE = "teams"
    USERS_TABLE = "users"

    def __init__(
        self,
        remote: RemoteSource,
        table_cache: TableCache,
        session_store: SessionStore,
        warmer: Optional[CacheWarmer] = None,
        warmup_tables: Sequence[str] = DEFAULT_WARMUP_TABLES,
        team_match_field: str = "code",
    ):
        """
        Args:
            remote: Source of truth for teams and users
            table_cache: Offline snapshots; ``users`` is read on fallback
            session_store: Where session fields are persisted
            warmer: Started in the background after a remote login
            warmup_tables: Tables the warmer mirrors
            team_match_field: Field of the resolved team row compared with
                ``users.team_id``
        """
        super().__init__()
        self.remote = remote
        self.table_cache = table_cache
        self.session_store = session_store
        self.warmer = warmer
        self.warmup_tables = list(warmup_tables)
        self.team_match_field = team_match_field

        self._transitions: Dict[LoginState, Callable[[LoginAttempt], LoginState]] = {
            LoginState.START: self._start,
            LoginState.TRY_REMOTE: self._try_remote,
            LoginState.REMOTE_SUCCESS: self._remote_success,
            LoginState.REMOTE_FAIL: self._remote_fail,
            LoginState.TRY_LOCAL: self._try_local,
            LoginState.LOCAL_SUCCESS: self._local_success,
            LoginState.LOCAL_FAIL: self._local_fail,
        }

    def login(self, team_code: Any, representative_code: Any, online: bool) -> LoginResult:
        """
        Run one login attempt to its terminal state.

        Args:
            team_code: Selected team code
            representative_code: Code typed by the representative
            online: Connectivity sampled once by the caller

        Returns:
            LoginResult; ``trace`` lists the states visited
        """
        attempt = LoginAttempt(
            team_code=_normalize(team_code),
            representative_code=_normalize(representative_code),
            online=bool(online),
        )
        trace: List[LoginState] = []
        state = LoginState.START

        while state is not LoginState.TERMINAL:
            trace.append(state)
            try:
                state = self._transitions[state](attempt)
            except Exception as e:
                self.logger.error(f"Login failed in state {state.value}: {e}", exc_info=True)
                state = attempt.finish(LoginOutcome.ERROR, MSG_TRANSIENT_ERROR)

        trace.append(LoginState.TERMINAL)
        attempt.result.trace = trace
        self.logger.info(
            f"Login finished: {attempt.result.outcome.value} "
            f"(path: {' -> '.join(s.value for s in trace)})"
        )
        return attempt.result

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def _start(self, attempt: LoginAttempt) -> LoginState:
        if not attempt.team_code:
            return attempt.finish(LoginOutcome.INVALID_INPUT, MSG_SELECT_TEAM)
        if not attempt.representative_code:
            return attempt.finish(LoginOutcome.INVALID_INPUT, MSG_ENTER_CODE)
        if not attempt.online:
            self.logger.info("No connection - going straight to offline login")
            return LoginState.TRY_LOCAL
        return LoginState.TRY_REMOTE

    def _try_remote(self, attempt: LoginAttempt) -> LoginState:
        try:
            team = self.remote.query_single(self.TEAMS_TABLE, {"code": attempt.team_code})
        except Exception as e:
            self.logger.warning(f"Online login failed (team): {e}")
            return LoginState.REMOTE_FAIL
        if not team:
            self.logger.warning(f"Online login failed: team {attempt.team_code} not resolved")
            return LoginState.REMOTE_FAIL
        attempt.team = team

        team_key = team.get(self.team_match_field, attempt.team_code)
        try:
            users = self.remote.query_where(
                self.USERS_TABLE,
                {"user_id": attempt.representative_code, "team_id": team_key},
            )
        except Exception as e:
            self.logger.warning(f"Online login failed (user): {e}")
            return LoginState.REMOTE_FAIL

        if not users:
            return attempt.finish(LoginOutcome.INVALID_CREDENTIALS, MSG_INVALID_CREDENTIALS)
        attempt.users = list(users)
        return LoginState.REMOTE_SUCCESS

    def _remote_success(self, attempt: LoginAttempt) -> LoginState:
        fields = self._session_fields(attempt, attempt.users[0])
        if not self.session_store.save(fields, remember=True):
            self.logger.warning("Session fields could not be persisted")

        if self.table_cache.set(self.USERS_TABLE, attempt.users):
            self.logger.info("Online login succeeded. User cached.")

        warmup = None
        if self.warmer is not None and self.warmup_tables:
            warmup = self.warmer.prepare_in_background(
                self.warmup_tables, on_complete=self._on_warmup_complete
            )

        return attempt.finish(LoginOutcome.SUCCESS, session=fields, source="remote", warmup=warmup)

    def _remote_fail(self, attempt: LoginAttempt) -> LoginState:
        self.logger.info("Online login failed, trying offline fallback")
        return LoginState.TRY_LOCAL

    def _try_local(self, attempt: LoginAttempt) -> LoginState:
        cached_users = self.table_cache.get(self.USERS_TABLE)
        if not cached_users:
            return attempt.finish(LoginOutcome.NO_OFFLINE_DATA, MSG_NO_OFFLINE_DATA)

        for row in cached_users:
            if self._matches(row, attempt):
                attempt.users = [row]
                return LoginState.LOCAL_SUCCESS
        return LoginState.LOCAL_FAIL

    def _local_success(self, attempt: LoginAttempt) -> LoginState:
        fields = self._session_fields(attempt, attempt.users[0])
        if not self.session_store.save(fields):
            self.logger.warning("Session fields could not be persisted")
        return attempt.finish(LoginOutcome.SUCCESS, session=fields, source="local")

    def _local_fail(self, attempt: LoginAttempt) -> LoginState:
        self.logger.info("User not found in the local cache")
        return attempt.finish(LoginOutcome.INVALID_CREDENTIALS, MSG_INVALID_CREDENTIALS)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _matches(row: Any, attempt: LoginAttempt) -> bool:
        """Cached user row for this representative, under team id or team code."""
        if not isinstance(row, Mapping):
            return False
        if _normalize(row.get("user_id")) != attempt.representative_code:
            return False
        return (
            loose_equal(row.get("team_id"), attempt.team_code)
            or loose_equal(row.get("team_code"), attempt.team_code)
        )

    @staticmethod
    def _session_fields(attempt: LoginAttempt, user: Mapping[str, Any]) -> SessionFields:
        return SessionFields(
            team_code=attempt.team_code,
            representative_code=_normalize(user.get("user_id")) or attempt.representative_code,
            representative_name=_normalize(user.get("name")),
        )

    def _on_warmup_complete(self, result: WarmupResult) -> None:
        if result.success:
            self.logger.info(f"Offline cache prepared: {result.counts}")
        else:
            self.logger.warning(f"Offline cache prepared with errors: {result.to_dict()['errors']}")
