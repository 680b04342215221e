# =============================================================================
# order_core/offline/connection_manager.py
# Connection Status Detection
# =============================================================================
"""
ConnectionManager - answers "is the network (and Supabase) reachable?".

Login samples this once per attempt; it is never re-checked mid-flow.
"""

from __future__ import annotations
import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Full connectivity (Internet + Supabase)
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but Supabase unavailable
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    remote_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Socket-level reachability probe.

    Usage:
        manager = ConnectionManager(settings.supabase_url)
        online = manager.check_connection().status is ConnectionStatus.ONLINE
    """

    CONNECTION_TIMEOUT = 5

    PROBE_HOSTS: Sequence[Tuple[str, int]] = (
        ("8.8.8.8", 53),          # Google DNS
        ("1.1.1.1", 53),          # Cloudflare DNS
        ("208.67.222.222", 53),   # OpenDNS
    )

    def __init__(self, remote_url: str = "", timeout: float = CONNECTION_TIMEOUT):
        self.remote_url = remote_url
        self.timeout = timeout
        self._state = ConnectionState()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def check_connection(self) -> ConnectionState:
        """Perform a connection check and update state."""
        old_status = self._state.status
        self._state.last_check = datetime.now()

        internet_ok = self._check_internet()
        remote_ok = internet_ok and self._check_remote()
        self._state.internet_available = internet_ok
        self._state.remote_available = remote_ok

        if internet_ok and remote_ok:
            self._state.status = ConnectionStatus.ONLINE
            self._state.last_online = datetime.now()
            self._state.consecutive_failures = 0
            self._state.error_message = None
        elif internet_ok:
            self._state.status = ConnectionStatus.DEGRADED
            self._state.consecutive_failures += 1
        else:
            self._state.status = ConnectionStatus.OFFLINE
            self._state.consecutive_failures += 1

        if old_status != self._state.status:
            logger.info(f"Connection status changed: {old_status.value} -> {self._state.status.value}")

        return self._state

    def sample(self) -> bool:
        """One fresh reachability sample, as a boolean."""
        return self.check_connection().status == ConnectionStatus.ONLINE

    def _can_connect(self, host: str, port: int) -> bool:
        try:
            with socket.create_connection((host, port), timeout=self.timeout):
                return True
        except OSError:
            return False

    def _check_internet(self) -> bool:
        return any(self._can_connect(host, port) for host, port in self.PROBE_HOSTS)

    def _check_remote(self) -> bool:
        if not self.remote_url:
            # No Supabase configured - nothing to reach
            return False

        parsed = urlparse(self.remote_url)
        if not parsed.hostname:
            self._state.error_message = f"Invalid remote URL: {self.remote_url}"
            return False
        port = parsed.port or (80 if parsed.scheme == "http" else 443)
        return self._can_connect(parsed.hostname, port)
