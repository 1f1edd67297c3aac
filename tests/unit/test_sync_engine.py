# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for SyncEngine
# =============================================================================

import threading
from unittest.mock import MagicMock

import pytest

from muni_core.errors import LocalStorageError, RemoteStoreError
from muni_core.offline import (
    MAX_ATTEMPTS,
    ConnectivityMonitor,
    OperationKind,
    SyncEngine,
    SyncFailure,
    SyncStatus,
)

COLLECTION = "bookings"


def queue_create(cache, queue, local_id="local_1", **fields):
    """Seed a record the way a repository create does"""
    payload = {"user_id": "u1", "notes": "hi", **fields}
    cache.put(COLLECTION, {**payload, "id": local_id, "sync_status": "pending"})
    return queue.enqueue(OperationKind.CREATE, COLLECTION, payload,
                         target_id=local_id, idempotency_key=local_id)


def queue_update(cache, queue, record_id, patch):
    cache.patch(COLLECTION, record_id, patch, status=SyncStatus.PENDING)
    return queue.enqueue(OperationKind.UPDATE, COLLECTION, patch, target_id=record_id)


def seed_synced(cache, remote, **fields):
    """A record that exists remotely and is cached as synced"""
    doc_id = remote.create(COLLECTION, {"user_id": "u1", **fields})
    cache.put(COLLECTION, {"user_id": "u1", **fields, "id": doc_id, "sync_status": "synced"})
    remote.calls.clear()
    return doc_id


class TestDrainBasics:
    """Test delivering queued operations"""

    def test_offline_drain_is_skipped(self, store, queue, cache, remote, offline_monitor):
        engine = SyncEngine(store, queue, cache, remote, offline_monitor, background_drain=False)
        queue_create(cache, queue)

        report = engine.drain()

        assert report.skipped
        assert remote.calls == []
        assert queue.pending_count() == 1

    def test_create_gets_remote_id(self, engine, queue, cache, remote):
        queue_create(cache, queue)

        report = engine.drain()

        record = cache.get(COLLECTION, "local_1")
        assert report.ok
        assert record["id"] != "local_1"
        assert record["local_id"] == "local_1"
        assert record["sync_status"] == "synced"
        assert queue.pending_count() == 0
        assert remote.documents(COLLECTION)[record["id"]]["client_ref"] == "local_1"

    def test_create_then_update_applied_in_order(self, engine, queue, cache, remote):
        queue_create(cache, queue)
        queue_update(cache, queue, "local_1", {"notes": "edited"})

        engine.drain()

        record = cache.get(COLLECTION, "local_1")
        assert [c[0] for c in remote.calls] == ["create", "update"]
        assert remote.documents(COLLECTION)[record["id"]]["notes"] == "edited"
        assert record["sync_status"] == "synced"
        assert queue.pending_count() == 0

    def test_record_stays_pending_while_later_ops_queued(self, engine, queue, cache, remote):
        queue_create(cache, queue)
        update = queue_update(cache, queue, "local_1", {"notes": "edited"})
        remote.always_fail.add("update")

        engine.drain()

        record = cache.get(COLLECTION, "local_1")
        assert record["sync_status"] == "pending"
        assert queue.get(update.id).target_id == record["id"]

    def test_delete_removes_cached_record(self, engine, queue, cache, remote):
        doc_id = seed_synced(cache, remote)
        queue.enqueue(OperationKind.DELETE, COLLECTION, {}, target_id=doc_id)

        engine.drain()

        assert cache.get(COLLECTION, doc_id) is None
        assert doc_id not in remote.documents(COLLECTION)

    def test_update_without_remote_id_counts_as_failed_attempt(self, engine, queue, cache):
        cache.put(COLLECTION, {"id": "local_orphan"})
        op = queue_update(cache, queue, "local_orphan", {"notes": "x"})

        report = engine.drain()

        assert report.retried == [op.id]
        assert queue.get(op.id).attempts == 1


class TestRetryCeiling:
    """Test bounded retries and permanent failures"""

    def test_update_failing_three_times_is_dropped_and_marked_failed(self, engine, queue, cache, remote):
        doc_id = seed_synced(cache, remote, notes="a")
        op = queue_update(cache, queue, doc_id, {"notes": "b"})
        remote.always_fail.add("update")

        for attempt in range(1, MAX_ATTEMPTS):
            report = engine.drain()
            assert report.retried == [op.id]
            assert queue.get(op.id).attempts == attempt
            assert cache.get(COLLECTION, doc_id)["sync_status"] == "pending"

        report = engine.drain()

        assert len(report.failed) == 1
        assert queue.pending_count() == 0
        assert cache.get(COLLECTION, doc_id)["sync_status"] == "failed"

        engine.drain()
        assert remote.attempts["update"] == MAX_ATTEMPTS

    def test_failures_are_persisted_and_reported(self, engine, queue, cache, remote, store):
        doc_id = seed_synced(cache, remote)
        queue_update(cache, queue, doc_id, {"notes": "b"})
        remote.always_fail.add("update")
        on_failure = MagicMock()
        engine.register_failure_callback(on_failure)

        for _ in range(MAX_ATTEMPTS):
            engine.drain()

        failures = engine.failures()
        assert len(failures) == 1
        assert failures[0].target_id == doc_id
        assert failures[0].attempts == MAX_ATTEMPTS
        assert "scripted update failure" in failures[0].error
        assert store.get_json("sync_failures")[0]["collection"] == COLLECTION
        on_failure.assert_called_once()
        assert isinstance(on_failure.call_args[0][0], SyncFailure)

        engine.clear_failures()
        assert engine.failures() == []

    def test_failed_create_defers_later_ops_on_same_record(self, engine, queue, cache, remote):
        queue_create(cache, queue)
        update = queue_update(cache, queue, "local_1", {"notes": "edited"})
        remote.fail_next["create"] = 1

        report = engine.drain()

        assert report.deferred == [update.id]
        assert queue.get(update.id).attempts == 0
        assert "update" not in remote.attempts

        engine.drain()
        assert queue.pending_count() == 0
        assert cache.get(COLLECTION, "local_1")["sync_status"] == "synced"

    def test_failure_on_one_record_does_not_block_another(self, engine, queue, cache, remote):
        first = seed_synced(cache, remote)
        second = seed_synced(cache, remote)
        queue_update(cache, queue, first, {"notes": "x"})
        queue_update(cache, queue, second, {"notes": "y"})
        remote.fail_next["update"] = 1

        report = engine.drain()

        assert len(report.retried) == 1
        assert len(report.synced) == 1
        assert cache.get(COLLECTION, second)["sync_status"] == "synced"


class TestIdempotentCreate:
    """Test replays of a create that already reached the remote"""

    def test_replayed_create_reuses_remote_document(self, engine, queue, cache, remote):
        queue_create(cache, queue)
        existing = remote.create(COLLECTION, {"user_id": "u1", "notes": "hi", "client_ref": "local_1"})

        engine.drain()

        record = cache.get(COLLECTION, "local_1")
        assert record["id"] == existing
        assert record["sync_status"] == "synced"
        assert len(remote.documents(COLLECTION)) == 1

    def test_refresh_during_replay_keeps_single_record(self, engine, queue, cache, remote):
        queue_create(cache, queue)
        remote.create(COLLECTION, {"user_id": "u1", "notes": "hi", "client_ref": "local_1"})

        assert len(engine.refresh(COLLECTION)) == 1

        engine.drain()
        merged = engine.refresh(COLLECTION)

        assert len(merged) == 1
        assert merged[0]["sync_status"] == "synced"

    def test_create_stays_queued_until_cache_confirms(self, engine, queue, cache, remote, monkeypatch):
        create = queue_create(cache, queue)
        update = queue_update(cache, queue, "local_1", {"notes": "edited"})
        original_confirm = cache.confirm_create
        calls = []

        def confirm_fails_once(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise LocalStorageError("disk full")
            return original_confirm(*args, **kwargs)

        monkeypatch.setattr(cache, "confirm_create", confirm_fails_once)

        with pytest.raises(LocalStorageError):
            engine.drain()

        assert queue.get(create.id) is not None
        assert cache.get(COLLECTION, "local_1")["sync_status"] == "pending"

        report = engine.drain()

        record = cache.get(COLLECTION, "local_1")
        assert report.synced == [create.id, update.id]
        assert queue.pending_count() == 0
        assert record["id"] != "local_1"
        assert record["local_id"] == "local_1"
        assert record["sync_status"] == "synced"
        assert len(remote.documents(COLLECTION)) == 1
        assert remote.documents(COLLECTION)[record["id"]]["notes"] == "edited"

        merged = engine.refresh(COLLECTION)
        assert [(r["id"], r["sync_status"]) for r in merged] == [(record["id"], "synced")]


class TestReentrancyAndTriggers:
    """Test the single-drain guard and drain triggers"""

    def test_nested_drain_is_a_no_op(self, engine, queue, cache, remote):
        queue_create(cache, queue)
        nested = []
        original_create = remote.create

        def create_and_reenter(collection, doc):
            nested.append(engine.drain())
            return original_create(collection, doc)

        remote.create = create_and_reenter

        report = engine.drain()

        assert nested[0].skipped
        assert len(report.synced) == 1
        assert len(remote.documents(COLLECTION)) == 1

    def test_reconnect_triggers_drain(self, store, queue, cache, remote, offline_monitor):
        engine = SyncEngine(store, queue, cache, remote, offline_monitor, background_drain=False)
        engine.start(periodic=False)
        queue_create(cache, queue)

        offline_monitor.report(True)

        assert queue.pending_count() == 0
        engine.stop()

    def test_background_request_drain(self, store, queue, cache, remote, monitor):
        engine = SyncEngine(store, queue, cache, remote, monitor, background_drain=True)
        queue_create(cache, queue)

        engine.request_drain()
        engine.wait_for_idle(timeout=5)

        assert queue.pending_count() == 0
        engine.stop()

    def test_background_drains_reuse_one_worker(self, store, queue, cache, remote, monitor):
        engine = SyncEngine(store, queue, cache, remote, monitor, background_drain=True)
        drain_threads = set()
        engine.register_callback(lambda state: drain_threads.add(threading.get_ident()))

        for i in range(20):
            queue_create(cache, queue, local_id=f"local_{i}")
            engine.request_drain()
            engine.wait_for_idle(timeout=5)

        assert queue.pending_count() == 0
        assert len(drain_threads) == 1
        engine.stop()

    def test_stop_waits_for_requested_drains(self, store, queue, cache, remote, monitor):
        engine = SyncEngine(store, queue, cache, remote, monitor, background_drain=True)
        for i in range(5):
            queue_create(cache, queue, local_id=f"local_{i}")
            engine.request_drain()

        engine.stop()

        assert queue.pending_count() == 0
        assert all(r["sync_status"] == "synced" for r in cache.records(COLLECTION))

    def test_request_drain_offline_does_nothing(self, store, queue, cache, remote, offline_monitor):
        engine = SyncEngine(store, queue, cache, remote, offline_monitor, background_drain=False)
        queue_create(cache, queue)

        engine.request_drain()

        assert queue.pending_count() == 1

    def test_state_callback_sees_drain(self, engine, queue, cache):
        seen = []
        engine.register_callback(lambda state: seen.append(state.is_syncing))
        queue_create(cache, queue)

        engine.drain()

        assert seen == [True, False]
        assert engine.state.total_synced == 1
        assert engine.state.last_sync_success is not None


class TestBackoffAndRefresh:

    def test_next_wait_backs_off_and_caps(self, engine):
        engine.sync_interval = 10
        engine.backoff_base = 2
        engine.backoff_max = 35

        waits = []
        for failures in range(3):
            engine.state.consecutive_failures = failures
            waits.append(engine.next_wait())

        assert waits == [10, 20, 35]

    def test_failing_cycle_increments_backoff(self, engine, queue, cache, remote):
        doc_id = seed_synced(cache, remote)
        queue_update(cache, queue, doc_id, {"notes": "x"})
        remote.fail_next["update"] = 1

        engine.drain()
        assert engine.state.consecutive_failures == 1

        engine.drain()
        assert engine.state.consecutive_failures == 0

    def test_refresh_failure_leaves_cache(self, engine, cache, remote):
        cache.put(COLLECTION, {"id": "R1", "sync_status": "synced"})
        remote.always_fail.add("query")

        with pytest.raises(RemoteStoreError):
            engine.refresh(COLLECTION)

        assert [r["id"] for r in cache.records(COLLECTION)] == ["R1"]

    def test_status_display(self, engine, queue, cache):
        queue_create(cache, queue)

        display = engine.get_status_display()

        assert display["pending_count"] == 1
        assert display["state"] == "idle"
        assert display["failed_count"] == 0
