# =============================================================================
# tests/unit/test_services.py
# Unit Tests for the OfflineServices container
# =============================================================================

from muni_core.data import InMemoryDocumentStore
from muni_core.offline import ConnectivityMonitor, OperationKind, build_services


class TestBuildServices:

    def test_mock_provider_from_settings(self, settings):
        services = build_services(settings)

        assert isinstance(services.remote, InMemoryDocumentStore)
        assert services.bookings.collection == "bookings"
        assert services.announcements.collection == "announcements"
        assert services.service_catalog.collection == "services"
        assert services.engine.background_drain is False
        services.close()

    def test_default_monitor_probes_remote(self, settings):
        services = build_services(settings)
        services.remote.online = False

        services.monitor.check_connection()

        assert not services.is_online
        services.close()

    def test_start_drains_leftover_queue(self, settings, store, remote):
        previous = build_services(settings, remote=remote, store=store,
                                  monitor=ConnectivityMonitor(probe_hosts=[], initial_online=False))
        previous.cache.put("bookings", {"id": "local_1", "notes": "x"})
        previous.queue.enqueue(OperationKind.CREATE, "bookings", {"notes": "x"},
                               target_id="local_1", idempotency_key="local_1")

        # Next process start, now online
        services = build_services(settings, remote=remote, store=store,
                                  monitor=ConnectivityMonitor(probe_hosts=[], initial_online=True))
        services.start()

        assert services.pending_sync_count == 0
        assert services.bookings.get("local_1")["sync_status"] == "synced"
        services.stop()

    def test_status_display(self, services):
        display = services.get_status_display()

        assert display["connection"]["is_online"] is False
        assert display["sync"]["pending_count"] == 0
