# =============================================================================
# muni_core/offline/connectivity.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectivityMonitor - Detects and monitors network / remote store reachability.

Features:
- Socket probe of well-known DNS hosts, then a remote store health probe
- Optional background re-check thread
- subscribe(): level callbacks, invoked immediately with the current state
- on_online(): edge callbacks, invoked only on offline -> online
- report(): apply reachability events coming from outside
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)

Handler = Callable[[bool], None]


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Internet and remote store reachable
    OFFLINE = "offline"         # No connectivity
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectivityMonitor:
    """
    Tracks whether the remote document store can be reached.

    Usage:
        monitor = ConnectivityMonitor(probe_hosts=[("8.8.8.8", 53)])
        unsubscribe = monitor.subscribe(lambda online: print(online))
        monitor.check_connection()
    """

    def __init__(
        self,
        probe_hosts: Optional[Sequence[Tuple[str, int]]] = None,
        remote_probe: Optional[Callable[[], bool]] = None,
        connection_timeout: float = 5.0,
        check_interval_online: float = 30.0,
        check_interval_offline: float = 10.0,
        initial_online: Optional[bool] = None,
    ):
        """
        Args:
            probe_hosts: (host, port) pairs tried for raw internet access
            remote_probe: Callable returning True when the remote store answers
            connection_timeout: Socket timeout per probe, in seconds
            check_interval_online: Re-check period while online
            check_interval_offline: Re-check period while offline
            initial_online: Known starting state; None leaves it UNKNOWN
        """
        self.probe_hosts = list(probe_hosts or [])
        self.remote_probe = remote_probe
        self.connection_timeout = connection_timeout
        self.check_interval_online = check_interval_online
        self.check_interval_offline = check_interval_offline

        self._state = ConnectionState()
        self._state_lock = threading.RLock()
        self._handlers: List[Handler] = []
        self._online_handlers: List[Handler] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

        if initial_online is not None:
            self._state.status = ConnectionStatus.ONLINE if initial_online else ConnectionStatus.OFFLINE

    @classmethod
    def from_settings(cls, settings, remote_probe: Optional[Callable[[], bool]] = None) -> ConnectivityMonitor:
        return cls(
            probe_hosts=settings.probe_hosts,
            remote_probe=remote_probe,
            connection_timeout=settings.connection_timeout,
            check_interval_online=settings.check_interval_online,
            check_interval_offline=settings.check_interval_offline,
        )

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    def current(self) -> bool:
        return self.is_online

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def report(self, is_connected: bool, error: Optional[str] = None) -> None:
        """
        Apply a reachability event.

        Handlers run only when the status actually changes; on_online handlers
        run only for a transition into ONLINE from OFFLINE or UNKNOWN.
        """
        with self._state_lock:
            old_status = self._state.status
            new_status = ConnectionStatus.ONLINE if is_connected else ConnectionStatus.OFFLINE
            self._state.last_check = datetime.now()

            if is_connected:
                self._state.last_online = self._state.last_check
                self._state.consecutive_failures = 0
                self._state.error_message = None
            else:
                self._state.consecutive_failures += 1
                self._state.error_message = error

            if old_status == new_status:
                return
            self._state.status = new_status

        logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
        self._notify(self._handlers, is_connected)
        if is_connected:
            self._notify(self._online_handlers, True)

    def check_connection(self) -> ConnectionState:
        """Probe now and apply the result."""
        internet_ok = self._check_internet()
        remote_ok = internet_ok and self._check_remote()

        error = None
        if not internet_ok:
            error = "No internet connection"
        elif not remote_ok:
            error = "Remote store unreachable"

        self.report(internet_ok and remote_ok, error=error)
        return self._state

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self.report(False, error="Forced offline")
        logger.info("Forced offline mode")

    def _check_internet(self) -> bool:
        if not self.probe_hosts:
            return True

        for host, port in self.probe_hosts:
            try:
                with socket.create_connection((host, port), timeout=self.connection_timeout):
                    return True
            except OSError:
                continue

        return False

    def _check_remote(self) -> bool:
        if self.remote_probe is None:
            return True
        try:
            return bool(self.remote_probe())
        except Exception as e:
            logger.debug(f"Remote probe failed: {e}")
            return False

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for every online/offline transition.

        The handler is called right away with the current state so a late
        subscriber never misses it.

        Returns:
            Function that removes the handler
        """
        if handler not in self._handlers:
            self._handlers.append(handler)
        self._notify([handler], self.is_online)
        return lambda: self._remove(self._handlers, handler)

    def on_online(self, handler: Handler) -> Callable[[], None]:
        """Register a handler for offline -> online edges only."""
        if handler not in self._online_handlers:
            self._online_handlers.append(handler)
        return lambda: self._remove(self._online_handlers, handler)

    @staticmethod
    def _remove(handlers: List[Handler], handler: Handler) -> None:
        if handler in handlers:
            handlers.remove(handler)

    @staticmethod
    def _notify(handlers: List[Handler], is_online: bool) -> None:
        for handler in list(handlers):
            try:
                handler(is_online)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    # =========================================================================
    # BACKGROUND MONITORING
    # =========================================================================

    def start_monitoring(self) -> None:
        """Check once, then keep re-checking on a daemon thread."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self.check_connection()
        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectivityMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        self._monitor_thread = None
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = (
                self.check_interval_online
                if self.is_online
                else self.check_interval_offline
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
