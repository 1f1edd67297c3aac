# =============================================================================
# muni_core/repositories/base.py
# Offline-first repository over one remote collection
# =============================================================================
"""
DomainRepository - the read/write API UI code uses for one collection.

Writes are optimistic: the cache is updated and an operation is queued
before anything touches the network. Reads go to the remote store when
online (merging the result into the cache) and fall back to the cache
whenever the remote cannot answer.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import logging

import pandas as pd

from muni_core.data.query import Filter, OrderSpec, apply_filters, sort_records
from muni_core.errors import LocalStorageError, RecordNotFoundError
from muni_core.offline.connectivity import ConnectivityMonitor
from muni_core.offline.local_store import to_json_safe
from muni_core.offline.operation_queue import OperationKind, OperationQueue, QueuedOperation
from muni_core.offline.record_cache import RecordCache
from muni_core.offline.records import SyncStatus, is_placeholder_id, make_placeholder_id
from muni_core.offline.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

# Cache bookkeeping that never goes to the remote store
RECORD_META_FIELDS = ("id", "local_id", "sync_status", "cached_at")


class DomainRepository:
    """
    Offline-first access to one collection.

    Local storage failures (LocalStorageError) propagate to the caller;
    remote failures never do.
    """

    # Columns converted to datetimes in to_dataframe()
    DATETIME_COLUMNS = ("created_at", "updated_at")

    def __init__(
        self,
        collection: str,
        cache: RecordCache,
        queue: OperationQueue,
        engine: SyncEngine,
        monitor: ConnectivityMonitor,
    ):
        self.collection = collection
        self.cache = cache
        self.queue = queue
        self.engine = engine
        self.monitor = monitor

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @staticmethod
    def _clean_payload(record: Dict[str, Any]) -> Dict[str, Any]:
        payload = {k: v for k, v in record.items() if k not in RECORD_META_FIELDS}
        return to_json_safe(payload)

    def _drain_if_online(self) -> None:
        if self.is_online:
            self.engine.request_drain()

    def _require(self, record_id: str) -> Dict[str, Any]:
        record = self.cache.get(self.collection, record_id)
        if record is None:
            raise RecordNotFoundError(
                f"No {self.collection} record with id {record_id}",
                collection=self.collection,
                record_id=record_id,
            )
        return record

    # =========================================================================
    # WRITES
    # =========================================================================

    def create(self, record: Dict[str, Any]) -> str:
        """
        Store a new record locally and queue it for the remote store.

        Returns:
            The placeholder id the record is known by until it syncs
        """
        local_id = make_placeholder_id()
        payload = self._clean_payload(record)

        self.cache.put(
            self.collection,
            {**payload, "id": local_id, "sync_status": SyncStatus.PENDING.value},
        )
        self.queue.enqueue(
            OperationKind.CREATE,
            self.collection,
            payload,
            target_id=local_id,
            idempotency_key=local_id,
        )
        logger.info(f"Created {self.collection}/{local_id} locally")

        self._drain_if_online()
        return local_id

    def _queued_create(self, target: str) -> Optional[QueuedOperation]:
        """The CREATE still queued for a placeholder id, or None."""
        for op in self.queue.drain_snapshot():
            if op.collection != self.collection or op.kind != OperationKind.CREATE:
                continue
            if target in (op.target_id, op.idempotency_key):
                return op
        return None

    def _is_local_only(self, target: str) -> bool:
        """A placeholder whose create has given up: nothing exists remotely to change."""
        return is_placeholder_id(target) and self._queued_create(target) is None

    def update(self, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a partial update locally and queue it.

        A record whose create already failed is queued for creation again
        with the patch applied.

        Raises:
            RecordNotFoundError: the id is not in the cache
        """
        record = self._require(record_id)
        target = record["id"]
        payload = self._clean_payload(patch)

        updated = self.cache.patch(self.collection, target, payload, status=SyncStatus.PENDING)
        if self._is_local_only(target):
            self.queue.enqueue(
                OperationKind.CREATE,
                self.collection,
                self._clean_payload(updated),
                target_id=target,
                idempotency_key=target,
            )
            logger.info(f"Requeued create for {self.collection}/{target}")
        else:
            self.queue.enqueue(OperationKind.UPDATE, self.collection, payload, target_id=target)

        self._drain_if_online()
        return updated

    def update_status(self, record_id: str, new_status: str) -> Dict[str, Any]:
        return self.update(record_id, {"status": new_status})

    def delete(self, record_id: str) -> None:
        """
        Queue removal of a record; it stays cached as pending until confirmed.

        A record that never reached the remote store (still queued, or its
        create failed) is dropped locally together with its queued operations.
        """
        record = self._require(record_id)
        target = record["id"]

        if is_placeholder_id(target):
            queued = self.queue.pending_for(self.collection, target)
            create = self._queued_create(target)
            if create is not None and create not in queued:
                queued.append(create)
            for op in queued:
                self.queue.remove(op.id)
            self.cache.remove(self.collection, target)
            logger.info(f"Discarded unsynced {self.collection}/{target}")
            return

        self.cache.set_status(self.collection, target, SyncStatus.PENDING)
        self.queue.enqueue(OperationKind.DELETE, self.collection, {}, target_id=target)
        self._drain_if_online()

    # =========================================================================
    # READS
    # =========================================================================

    def list(
        self,
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[OrderSpec] = None,
    ) -> List[Dict[str, Any]]:
        """
        Records matching every filter.

        Online: fetched, merged into the cache, then read back ordered.
        Offline, or when the fetch fails: cached records in cache order.
        """
        if self.is_online:
            try:
                self.engine.refresh(self.collection, filters, order)
                return sort_records(apply_filters(self.cache.records(self.collection), filters), order)
            except LocalStorageError:
                raise
            except Exception as e:
                logger.warning(f"Online fetch failed for {self.collection}, using cache: {e}")

        return apply_filters(self.cache.records(self.collection), filters)

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Cached record by current id or by the placeholder it was created under."""
        return self.cache.get(self.collection, record_id)

    def failed_records(self) -> List[Dict[str, Any]]:
        """Records whose changes did not sync."""
        return self.cache.with_status(self.collection, SyncStatus.FAILED)

    def pending_records(self) -> List[Dict[str, Any]]:
        return self.cache.with_status(self.collection, SyncStatus.PENDING)

    def to_dataframe(self, records: Optional[List[Dict[str, Any]]] = None) -> pd.DataFrame:
        """
        Tabular view for st.dataframe.

        Args:
            records: Records to show (default: everything cached)
        """
        if records is None:
            records = self.cache.records(self.collection)
        if not records:
            return pd.DataFrame()

        df = pd.DataFrame(records)
        for col in self.DATETIME_COLUMNS:
            if col in df.columns:
                df[col] = pd.to_datetime(df[col], errors="coerce")
        return df

    @staticmethod
    def _now() -> str:
        return datetime.now().isoformat()
