# =============================================================================
# muni_core/offline/sync_engine.py
# Automatic Synchronization Engine
# =============================================================================
"""
SyncEngine - Delivers queued mutations to the remote store and merges remote
reads back into the local cache.

Features:
- FIFO drain with per-record ordering
- Bounded retry (MAX_ATTEMPTS per operation), persisted attempt counters
- Permanent failures recorded, logged and surfaced, never silently dropped
- Single drain at a time; extra triggers while draining are no-ops
- Drain on offline -> online edges, on request, and periodically with
  exponential backoff after failing cycles
"""

from __future__ import annotations
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from muni_core.data.base import RemoteDocumentStore
from muni_core.data.query import Filter, OrderSpec
from muni_core.errors import LocalStorageError, RemoteStoreError, SyncFailedError
from muni_core.logging import LogContext
from muni_core.offline.connectivity import ConnectivityMonitor
from muni_core.offline.local_store import LocalStore
from muni_core.offline.operation_queue import (
    MAX_ATTEMPTS,
    OperationKind,
    OperationQueue,
    QueuedOperation,
)
from muni_core.offline.record_cache import RecordCache
from muni_core.offline.records import SyncStatus, is_placeholder_id

logger = logging.getLogger(__name__)

FAILURES_KEY = "sync_failures"


class SyncEngineState(Enum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class SyncState:
    """Run statistics; diagnostics only, nothing here needs to survive a restart."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    pending_count: int = 0
    failed_count: int = 0
    total_synced: int = 0
    consecutive_failures: int = 0


@dataclass
class SyncFailure:
    """An operation that used up its delivery attempts."""
    operation_id: str
    kind: str
    collection: str
    target_id: Optional[str]
    attempts: int
    error: Optional[str]
    failed_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def from_operation(cls, op: QueuedOperation) -> SyncFailure:
        return cls(
            operation_id=op.id,
            kind=op.kind.value,
            collection=op.collection,
            target_id=op.target_id,
            attempts=op.attempts,
            error=op.last_error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_error(self) -> SyncFailedError:
        return SyncFailedError(
            f"{self.kind} on {self.collection} did not sync: {self.error}",
            operation_id=self.operation_id,
            collection=self.collection,
            target_id=self.target_id,
            attempts=self.attempts,
        )


@dataclass
class DrainReport:
    """Outcome of one drain cycle."""
    skipped: bool = False
    synced: List[str] = field(default_factory=list)
    retried: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    failed: List[SyncFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped and not self.retried and not self.failed


class SyncEngine:
    """
    The only component that writes queued mutations to the remote store.

    Usage:
        engine = SyncEngine(store, queue, cache, remote, monitor)
        engine.start()            # drain on reconnect + periodic loop
        report = engine.drain()   # explicit drain
        engine.stop()
    """

    def __init__(
        self,
        store: LocalStore,
        queue: OperationQueue,
        cache: RecordCache,
        remote: RemoteDocumentStore,
        monitor: ConnectivityMonitor,
        sync_interval: float = 30.0,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
        background_drain: bool = True,
    ):
        self._store = store
        self.queue = queue
        self.cache = cache
        self.remote = remote
        self.monitor = monitor

        self.sync_interval = sync_interval
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.background_drain = background_drain

        self._engine_state = SyncEngineState.IDLE
        self._state = SyncState()
        self._drain_lock = threading.Lock()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._failure_callbacks: List[Callable[[SyncFailure], None]] = []

        self._sync_thread: Optional[threading.Thread] = None
        self._drain_executor: Optional[ThreadPoolExecutor] = None
        self._drain_futures: List[Future] = []
        self._executor_lock = threading.Lock()
        self._stop_sync = threading.Event()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def engine_state(self) -> SyncEngineState:
        return self._engine_state

    @property
    def is_syncing(self) -> bool:
        return self._engine_state == SyncEngineState.DRAINING

    @property
    def pending_count(self) -> int:
        return self.queue.pending_count()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, periodic: bool = True) -> None:
        """Drain on every offline -> online edge; optionally run the periodic loop."""
        if self._unsubscribe is None:
            self._unsubscribe = self.monitor.on_online(self._on_online)

        if not periodic or (self._sync_thread is not None and self._sync_thread.is_alive()):
            return

        self._stop_sync.clear()
        self._sync_thread = threading.Thread(
            target=self._sync_loop,
            daemon=True,
            name="SyncEngine"
        )
        self._sync_thread.start()
        logger.info("Sync engine started")

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._stop_sync.set()
        if self._sync_thread:
            self._sync_thread.join(timeout=10)
            self._sync_thread = None

        with self._executor_lock:
            executor, self._drain_executor = self._drain_executor, None
            self._drain_futures = []
        if executor is not None:
            executor.shutdown(wait=True)
        logger.info("Sync engine stopped")

    def _on_online(self, _is_online: bool) -> None:
        logger.info("Connection restored, triggering sync")
        self.request_drain()

    def next_wait(self) -> float:
        """Seconds until the next periodic drain, backing off after failing cycles."""
        delay = self.sync_interval * (self.backoff_base ** self._state.consecutive_failures)
        return min(delay, self.backoff_max)

    def _sync_loop(self) -> None:
        while not self._stop_sync.is_set():
            if self._stop_sync.wait(timeout=self.next_wait()):
                break

            if self.monitor.is_online and self.queue.pending_count():
                try:
                    self.drain()
                except Exception as e:
                    logger.error(f"Sync error: {e}", exc_info=True)

    # =========================================================================
    # DRAINING
    # =========================================================================

    def request_drain(self) -> None:
        """
        Opportunistic drain that the caller does not wait on.

        Runs on the engine's single drain worker when background_drain is set,
        inline otherwise. A request made while another is still waiting to
        start is folded into it.
        """
        if not self.monitor.is_online:
            return

        if not self.background_drain:
            self.drain()
            return

        with self._executor_lock:
            self._drain_futures = [f for f in self._drain_futures if not f.done()]
            if any(not f.running() for f in self._drain_futures):
                return
            if self._drain_executor is None:
                self._drain_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="SyncDrain")
            self._drain_futures.append(self._drain_executor.submit(self._drain_quietly))

    def _drain_quietly(self) -> None:
        try:
            self.drain()
        except Exception as e:
            logger.error(f"Background drain failed: {e}", exc_info=True)

    def wait_for_idle(self, timeout: Optional[float] = None) -> None:
        """Block until every requested background drain has finished."""
        if threading.current_thread().name.startswith("SyncDrain"):
            return
        with self._executor_lock:
            futures = list(self._drain_futures)
        if futures:
            wait(futures, timeout=timeout)

    def drain(self) -> DrainReport:
        """
        Deliver every queued operation once, in enqueue order.

        Returns:
            DrainReport; ``skipped`` when offline or another drain is running
        """
        if not self.monitor.is_online:
            logger.debug("Cannot sync: offline")
            return DrainReport(skipped=True)

        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Drain already in progress")
            return DrainReport(skipped=True)

        report = DrainReport()
        self._engine_state = SyncEngineState.DRAINING
        self._state.is_syncing = True
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        try:
            snapshot = self.queue.drain_snapshot()
            if snapshot:
                with LogContext(logger, f"Draining {len(snapshot)} queued operations"):
                    self._drain_snapshot(snapshot, report)
        finally:
            self._finish_cycle(report)
            self._engine_state = SyncEngineState.IDLE
            self._drain_lock.release()
            self._notify_callbacks()

        return report

    def _drain_snapshot(self, snapshot: List[QueuedOperation], report: DrainReport) -> None:
        id_map: Dict[str, str] = {}
        blocked = set()

        for op in snapshot:
            target = id_map.get(op.target_id, op.target_id)
            record_key = (op.collection, target)

            if record_key in blocked:
                # An earlier operation on this record is still undelivered
                report.deferred.append(op.id)
                continue

            try:
                remote_id = self._execute(op, target)
            except LocalStorageError:
                raise
            except Exception as e:
                blocked.add(record_key)
                self._handle_failure(op, target, e, report)
                continue

            # Confirm locally before dequeuing; a crash in between replays the op
            if op.kind == OperationKind.CREATE:
                id_map[op.target_id] = remote_id
                id_map[self._local_id(op)] = remote_id
                self._confirm_create(op, remote_id)
            elif op.kind == OperationKind.UPDATE:
                self._confirm_update(op, target)
            else:
                self.cache.remove(op.collection, target)
            self.queue.remove(op.id)
            report.synced.append(op.id)

    def _execute(self, op: QueuedOperation, target: Optional[str]) -> Optional[str]:
        """Send one operation; returns the remote id for creates."""
        if op.kind == OperationKind.CREATE:
            doc = dict(op.payload)
            existing = None
            if op.idempotency_key:
                doc["client_ref"] = op.idempotency_key
                existing = self.remote.find_by_client_ref(op.collection, op.idempotency_key)
            if existing:
                logger.info(f"Create {op.id} already applied remotely as {existing}")
                return existing
            return self.remote.create(op.collection, doc)

        if not target or is_placeholder_id(target):
            raise RemoteStoreError(
                f"Record {target} has no remote id yet",
                collection=op.collection,
                operation=op.kind.value,
            )

        if op.kind == OperationKind.UPDATE:
            self.remote.update(op.collection, target, op.payload)
        else:
            self.remote.delete(op.collection, target)
        return target

    @staticmethod
    def _local_id(op: QueuedOperation) -> Optional[str]:
        """Placeholder a create was queued under, even after a retarget."""
        return op.idempotency_key or op.target_id

    def _settled_status(self, collection: str, record_id: str, delivered_op_id: str) -> SyncStatus:
        """SYNCED unless operations other than the delivered one still target the record."""
        others = [o for o in self.queue.pending_for(collection, record_id) if o.id != delivered_op_id]
        return SyncStatus.PENDING if others else SyncStatus.SYNCED

    def _confirm_create(self, op: QueuedOperation, remote_id: str) -> None:
        local_id = self._local_id(op)
        self.queue.retarget(local_id, remote_id)
        status = self._settled_status(op.collection, remote_id, op.id)
        if self.cache.confirm_create(op.collection, local_id, remote_id, status=status) is None:
            logger.debug(f"Created {op.collection}/{remote_id} has no cached record")

    def _confirm_update(self, op: QueuedOperation, target: str) -> None:
        status = self._settled_status(op.collection, target, op.id)
        self.cache.set_status(op.collection, target, status)

    def _handle_failure(
        self,
        op: QueuedOperation,
        target: Optional[str],
        error: Exception,
        report: DrainReport,
    ) -> None:
        updated = self.queue.mark_attempt(op.id, error=str(error))
        if updated is None:
            return

        if not updated.exhausted:
            logger.warning(
                f"Sync of {op.kind.value} {op.collection}/{target} failed "
                f"(attempt {updated.attempts}/{MAX_ATTEMPTS}): {error}"
            )
            report.retried.append(op.id)
            return

        failure = SyncFailure.from_operation(updated)
        failure.target_id = target
        if target:
            self.cache.set_status(op.collection, target, SyncStatus.FAILED)
        self._store.update(FAILURES_KEY, lambda items: items + [failure.to_dict()], default=[])
        logger.error(str(failure.to_error()))
        report.failed.append(failure)

        for callback in list(self._failure_callbacks):
            try:
                callback(failure)
            except Exception as e:
                logger.error(f"Error in sync failure callback: {e}")

    def _finish_cycle(self, report: DrainReport) -> None:
        self._state.is_syncing = False
        self._state.total_synced += len(report.synced)
        self._state.failed_count += len(report.failed)
        self._state.pending_count = self.queue.pending_count()

        if report.retried or report.failed:
            self._state.consecutive_failures += 1
        else:
            self._state.consecutive_failures = 0
            self._state.last_sync_success = datetime.now()

        if report.synced or report.retried or report.failed:
            logger.info(
                f"Sync complete: {len(report.synced)} success, {len(report.retried)} retry, "
                f"{len(report.failed)} failed, {len(report.deferred)} deferred"
            )

    # =========================================================================
    # READS
    # =========================================================================

    def refresh(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[OrderSpec] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query the remote store and merge the result into the cache.

        Raises:
            RemoteStoreError: the query failed; the cache is untouched
        """
        docs = self.remote.query(collection, filters, order)
        merged = self.cache.merge(collection, docs, filters)
        logger.debug(f"Pulled {len(docs)} records from {collection}")
        return merged

    # =========================================================================
    # FAILURES AND CALLBACKS
    # =========================================================================

    def failures(self) -> List[SyncFailure]:
        """Persisted permanent failures, oldest first."""
        return [SyncFailure(**d) for d in self._store.get_json(FAILURES_KEY, [])]

    def clear_failures(self) -> None:
        self._store.set_json(FAILURES_KEY, [])

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def register_failure_callback(self, callback: Callable[[SyncFailure], None]) -> None:
        """Register a callback for operations that exhausted their attempts."""
        if callback not in self._failure_callbacks:
            self._failure_callbacks.append(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "state": self._engine_state.value,
            "is_syncing": self.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": self._state.last_sync_success.isoformat() if self._state.last_sync_success else None,
            "pending_count": self.pending_count,
            "failed_count": len(self.failures()),
            "total_synced": self._state.total_synced,
            "next_retry_in": self.next_wait() if self._state.consecutive_failures else None,
        }
