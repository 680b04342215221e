# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for Connectivity Detection
# =============================================================================

from unittest.mock import patch

from order_core.offline.connection_manager import ConnectionManager, ConnectionStatus


class TestConnectionManager:
    """Status derivation (sockets patched)"""

    def test_online_when_internet_and_remote_reachable(self):
        manager = ConnectionManager("https://example.supabase.co")

        with patch.object(manager, "_can_connect", return_value=True) as probe:
            assert manager.sample() is True

        assert manager.state.status is ConnectionStatus.ONLINE
        assert manager.state.last_online is not None
        probe.assert_any_call("example.supabase.co", 443)

    def test_degraded_without_remote_url(self):
        manager = ConnectionManager("")

        with patch.object(manager, "_can_connect", return_value=True):
            assert manager.sample() is False

        assert manager.state.status is ConnectionStatus.DEGRADED

    def test_offline_when_nothing_reachable(self):
        manager = ConnectionManager("https://example.supabase.co")

        with patch.object(manager, "_can_connect", return_value=False):
            manager.check_connection()
            state = manager.check_connection()

        assert state.status is ConnectionStatus.OFFLINE
        assert state.consecutive_failures == 2

    def test_recovery_resets_failures(self):
        manager = ConnectionManager("http://localhost:54321")

        with patch.object(manager, "_can_connect", return_value=False):
            manager.check_connection()
        with patch.object(manager, "_can_connect", return_value=True) as probe:
            state = manager.check_connection()

        assert state.status is ConnectionStatus.ONLINE
        assert state.consecutive_failures == 0
        probe.assert_any_call("localhost", 54321)

    def test_invalid_remote_url(self):
        manager = ConnectionManager("not a url")

        with patch.object(manager, "_can_connect", return_value=True):
            state = manager.check_connection()

        assert state.status is ConnectionStatus.DEGRADED
        assert state.error_message.startswith("Invalid remote URL")
