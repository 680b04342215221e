"""
Login for the order-entry app.

Representatives log in with a team and a code. The remote source is tried
first; the cached ``users`` snapshot is used when offline or when the
remote source fails.
"""

from .login_resolver import (
    LoginOutcome,
    LoginResolver,
    LoginResult,
    LoginState,
)
from .session_store import SessionFields, SessionStore
from .team_directory import TeamDirectory

__all__ = [
    "LoginOutcome",
    "LoginResolver",
    "LoginResult",
    "LoginState",
    "SessionFields",
    "SessionStore",
    "TeamDirectory",
]
