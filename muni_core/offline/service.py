# =============================================================================
# muni_core/offline/service.py
# Service container - wires store, queue, cache, monitor, engine, repositories
# =============================================================================
"""
OfflineServices - the object the application builds once at startup.

Nothing in muni_core is a process-wide singleton; whoever needs the engine
or a repository is handed this container.

Usage:
------
from muni_core.config import load_settings
from muni_core.offline import build_services

services = build_services(load_settings())
services.start()

booking_id = services.bookings.create_booking(booking)
print(services.is_online, services.pending_sync_count)

services.stop()
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import logging

from muni_core.config.settings import SyncSettings
from muni_core.data import RemoteDocumentStore, build_remote_store
from muni_core.offline.connectivity import ConnectivityMonitor
from muni_core.offline.local_store import LocalStore
from muni_core.offline.operation_queue import OperationQueue
from muni_core.offline.record_cache import RecordCache
from muni_core.offline.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class OfflineServices:
    """Explicitly constructed owner of every offline-sync component."""

    def __init__(
        self,
        settings: SyncSettings,
        store: LocalStore,
        remote: RemoteDocumentStore,
        monitor: ConnectivityMonitor,
    ):
        self.settings = settings
        self.store = store
        self.remote = remote
        self.monitor = monitor

        self.queue = OperationQueue(store)
        self.cache = RecordCache(store)
        self.engine = SyncEngine(
            store,
            self.queue,
            self.cache,
            remote,
            monitor,
            sync_interval=settings.sync_interval,
            backoff_base=settings.backoff_base,
            backoff_max=settings.backoff_max,
            background_drain=settings.background_drain,
        )

        # Imported here: repositories depend on this package
        from muni_core.repositories import (
            AnnouncementRepository,
            BookingRepository,
            ServiceRepository,
        )

        repo_args = (self.cache, self.queue, self.engine, self.monitor)
        self.bookings = BookingRepository(*repo_args)
        self.announcements = AnnouncementRepository(*repo_args)
        self.service_catalog = ServiceRepository(*repo_args)

        self._started = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def pending_sync_count(self) -> int:
        return self.queue.pending_count()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Start draining on reconnect, the periodic loop and (optionally)
        connectivity monitoring. Operations left over from a previous run are
        drained right away when online.
        """
        if self._started:
            return

        self.engine.start()
        if self.settings.start_monitoring:
            self.monitor.start_monitoring()

        if self.monitor.is_online and self.queue.pending_count():
            self.engine.request_drain()

        self._started = True
        logger.info(
            f"Offline services started. Online: {self.is_online}, "
            f"pending: {self.pending_sync_count}"
        )

    def stop(self) -> None:
        self.engine.stop()
        self.monitor.stop_monitoring()
        self._started = False

    def close(self) -> None:
        self.stop()
        self.store.close()

    def get_status_display(self) -> Dict[str, Any]:
        """Combined connectivity and sync status for UI display."""
        return {
            "connection": self.monitor.get_status_display(),
            "sync": self.engine.get_status_display(),
        }


def build_services(
    settings: Optional[SyncSettings] = None,
    remote: Optional[RemoteDocumentStore] = None,
    monitor: Optional[ConnectivityMonitor] = None,
    store: Optional[LocalStore] = None,
) -> OfflineServices:
    """
    Assemble OfflineServices; any collaborator passed in is used as is.

    Args:
        settings: Defaults to SyncSettings()
        remote: Defaults to the provider named by settings.remote_provider
        monitor: Defaults to a monitor probing settings.probe_hosts and the remote
        store: Defaults to a LocalStore at settings.db_path
    """
    settings = settings or SyncSettings()
    store = store or LocalStore(settings.db_path)
    remote = remote or build_remote_store(settings)
    monitor = monitor or ConnectivityMonitor.from_settings(settings, remote_probe=remote.is_available)

    services = OfflineServices(settings, store, remote, monitor)
    logger.debug(f"Built offline services with {type(remote).__name__} at {settings.db_path}")
    return services
