# =============================================================================
# tests/unit/test_connectivity.py
# Unit Tests for ConnectivityMonitor
# =============================================================================

import socket
from unittest.mock import MagicMock, patch

from muni_core.config import SyncSettings
from muni_core.offline import ConnectionStatus, ConnectivityMonitor


class TestSubscriptions:
    """Test level and edge callbacks"""

    def test_subscribe_receives_current_state_immediately(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=True)
        seen = []

        monitor.subscribe(seen.append)

        assert seen == [True]

    def test_subscriber_sees_each_transition_once(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=False)
        seen = []
        monitor.subscribe(seen.append)

        monitor.report(True)
        monitor.report(True)
        monitor.report(False)

        assert seen == [False, True, False]

    def test_unsubscribe(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=False)
        seen = []
        unsubscribe = monitor.subscribe(seen.append)

        unsubscribe()
        monitor.report(True)

        assert seen == [False]

    def test_on_online_fires_only_on_edges(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=False)
        handler = MagicMock()
        monitor.on_online(handler)

        monitor.report(True)
        monitor.report(True)
        monitor.report(False)
        monitor.report(True)

        assert handler.call_count == 2

    def test_unknown_to_online_is_an_edge(self):
        monitor = ConnectivityMonitor(probe_hosts=[])
        handler = MagicMock()
        monitor.on_online(handler)

        assert monitor.status == ConnectionStatus.UNKNOWN
        monitor.report(True)

        handler.assert_called_once_with(True)

    def test_failing_handler_does_not_block_others(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=False)
        seen = []
        monitor.subscribe(MagicMock(side_effect=RuntimeError("bad handler")))
        monitor.subscribe(seen.append)

        monitor.report(True)

        assert seen == [False, True]


class TestConnectionChecks:
    """Test probing"""

    def test_remote_probe_failure_means_offline(self):
        monitor = ConnectivityMonitor(probe_hosts=[], remote_probe=lambda: False)

        state = monitor.check_connection()

        assert state.status == ConnectionStatus.OFFLINE
        assert state.error_message == "Remote store unreachable"

    def test_probe_exception_means_offline(self):
        monitor = ConnectivityMonitor(probe_hosts=[], remote_probe=MagicMock(side_effect=OSError("dns")))

        assert not monitor.check_connection().status == ConnectionStatus.ONLINE

    def test_socket_probe_failure_means_offline(self):
        monitor = ConnectivityMonitor(probe_hosts=[("10.255.255.1", 53)], remote_probe=lambda: True)

        with patch.object(socket, "create_connection", side_effect=OSError("unreachable")):
            state = monitor.check_connection()

        assert state.status == ConnectionStatus.OFFLINE
        assert state.error_message == "No internet connection"
        assert state.consecutive_failures == 1

    def test_socket_and_remote_ok_means_online(self):
        monitor = ConnectivityMonitor(probe_hosts=[("8.8.8.8", 53)], remote_probe=lambda: True)

        with patch.object(socket, "create_connection", return_value=MagicMock()):
            assert monitor.check_connection().status == ConnectionStatus.ONLINE
        assert monitor.is_online

    def test_force_offline(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=True)
        monitor.force_offline()
        assert not monitor.current()

    def test_from_settings(self):
        settings = SyncSettings(probe_hosts=[("1.1.1.1", 53)], connection_timeout=2, remote_provider="mock")
        monitor = ConnectivityMonitor.from_settings(settings)

        assert monitor.probe_hosts == [("1.1.1.1", 53)]
        assert monitor.connection_timeout == 2

    def test_status_display(self):
        monitor = ConnectivityMonitor(probe_hosts=[], initial_online=False)
        monitor.report(False, error="No internet connection")

        display = monitor.get_status_display()

        assert display["status"] == "offline"
        assert display["is_online"] is False
        assert display["error"] == "No internet connection"
