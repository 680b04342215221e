# =============================================================================
# order_core/data/__init__.py
# =============================================================================

from .remote_source import (
    RemoteSource,
    SupabaseRemoteSource,
    UnavailableRemoteSource,
    get_supabase_client,
)

__all__ = [
    "RemoteSource",
    "SupabaseRemoteSource",
    "UnavailableRemoteSource",
    "get_supabase_client",
]
