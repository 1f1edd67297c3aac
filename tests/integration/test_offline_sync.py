# =============================================================================
# tests/integration/test_offline_sync.py
# End-to-end offline -> online scenarios through OfflineServices
# =============================================================================

import pytest

from muni_core.domain import Announcement, Booking
from muni_core.offline import ConnectivityMonitor, LocalStore, MAX_ATTEMPTS, build_services


def make_booking(**overrides):
    fields = dict(user_id="resident-1", service_id="clearance", date="2025-03-01", time="09:30")
    fields.update(overrides)
    return Booking(**fields)


@pytest.fixture
def started(services):
    """Container with reconnect draining enabled"""
    services.start()
    return services


class TestOfflineCreateThenReconnect:

    def test_booking_syncs_with_server_id(self, started, remote):
        booking_id = started.bookings.create_booking(make_booking())
        assert started.bookings.get(booking_id)["sync_status"] == "pending"

        started.monitor.report(True)

        record = started.bookings.get(booking_id)
        assert record["sync_status"] == "synced"
        assert record["id"] in remote.documents("bookings")
        assert started.pending_sync_count == 0

        # A fresh read after the sync keeps exactly one copy
        assert len(started.bookings.list_for_user("resident-1")) == 1

    def test_create_then_note_applied_in_order(self, started, remote):
        booking_id = started.bookings.create_booking(make_booking())
        started.bookings.add_note(booking_id, "Bring 2 valid IDs")

        started.monitor.report(True)

        record = started.bookings.get(booking_id)
        assert [c[0] for c in remote.calls][:2] == ["create", "update"]
        assert remote.documents("bookings")[record["id"]]["notes"] == "Bring 2 valid IDs"
        assert record["sync_status"] == "synced"

    def test_online_writes_sync_immediately(self, started, remote):
        started.monitor.report(True)

        announcement_id = started.announcements.post(Announcement(title="Clean-up drive", content="Sat 7AM"))

        record = started.announcements.get(announcement_id)
        assert record["sync_status"] == "synced"
        assert len(remote.documents("announcements")) == 1


class TestPermanentFailure:

    def test_update_failing_three_times_marks_record_failed(self, started, remote):
        started.monitor.report(True)
        booking_id = started.bookings.create_booking(make_booking())
        remote_id = started.bookings.get(booking_id)["id"]
        remote.always_fail.add("update")

        started.bookings.update_status(remote_id, "approved")
        for _ in range(MAX_ATTEMPTS - 1):
            started.engine.drain()

        assert remote.attempts["update"] == MAX_ATTEMPTS
        assert started.pending_sync_count == 0
        assert [r["id"] for r in started.bookings.failed_records()] == [remote_id]
        assert started.engine.failures()[0].target_id == remote_id

        # Failed records stay visible through later reads
        assert started.bookings.get(remote_id)["status"] == "approved"
        started.bookings.list_all()
        assert started.bookings.get(remote_id)["sync_status"] == "failed"


class TestRestart:

    def test_queue_survives_restart(self, settings, tmp_path, remote):
        db_path = tmp_path / "restart.db"

        first = build_services(settings, remote=remote, store=LocalStore(db_path),
                               monitor=ConnectivityMonitor(probe_hosts=[], initial_online=False))
        booking_id = first.bookings.create_booking(make_booking())
        first.close()

        second = build_services(settings, remote=remote, store=LocalStore(db_path),
                                monitor=ConnectivityMonitor(probe_hosts=[], initial_online=True))
        second.start()

        assert second.bookings.get(booking_id)["sync_status"] == "synced"
        assert len(remote.documents("bookings")) == 1
        second.close()
