# =============================================================================
# muni_core/offline/record_cache.py
# Per-collection read cache of domain records
# =============================================================================
"""
RecordCache - one JSON bucket per collection (``cache:bookings`` ...).

All writes go through LocalStore.update() so each change is computed from
the bucket as it is on disk at that moment.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
import logging

from muni_core.data.query import Filter
from muni_core.offline.local_store import LocalStore
from muni_core.offline.records import (
    SyncStatus,
    find_record,
    merge_remote,
)

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


class RecordCache:
    """Local copies of remote documents plus not-yet-confirmed local writes."""

    def __init__(self, store: LocalStore):
        self._store = store

    @staticmethod
    def bucket_key(collection: str) -> str:
        return f"{CACHE_PREFIX}{collection}"

    def records(self, collection: str) -> List[Dict[str, Any]]:
        """Cached records in cache order (creation order for local writes)."""
        return self._store.get_json(self.bucket_key(collection), [])

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return find_record(self.records(collection), record_id)

    def put(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a record by id; new records are appended."""
        record = dict(record)
        record.setdefault("sync_status", SyncStatus.PENDING.value)
        record["cached_at"] = datetime.now().isoformat()

        def _upsert(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            out = [r for r in items if str(r.get("id")) != str(record["id"])]
            if len(out) == len(items):
                return items + [record]
            return [record if str(r.get("id")) == str(record["id"]) else r for r in items]

        self._store.update(self.bucket_key(collection), _upsert, default=[])
        return record

    def patch(
        self,
        collection: str,
        record_id: str,
        changes: Dict[str, Any],
        status: Optional[SyncStatus] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Apply field changes (and optionally a new sync status) to one record.

        Returns:
            The patched record, or None if the id is not cached
        """
        result: Dict[str, Any] = {}

        def _patch(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            target = find_record(items, record_id)
            if target is None:
                return items
            updated = {**target, **changes}
            if status is not None:
                updated["sync_status"] = status.value
            result["record"] = updated
            return [updated if r is target else r for r in items]

        self._store.update(self.bucket_key(collection), _patch, default=[])
        return result.get("record")

    def set_status(self, collection: str, record_id: str, status: SyncStatus) -> Optional[Dict[str, Any]]:
        return self.patch(collection, record_id, {}, status=status)

    def confirm_create(
        self,
        collection: str,
        local_id: str,
        remote_id: str,
        status: SyncStatus = SyncStatus.SYNCED,
    ) -> Optional[Dict[str, Any]]:
        """
        Swap a placeholder id for the remote id and mark the record synced
        (or still pending, when later operations on it are queued).

        Running this twice with the same ids gives the same bucket.
        """
        result: Dict[str, Any] = {}

        def _confirm(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            target = find_record(items, local_id)
            if target is None:
                return items
            confirmed = {
                **target,
                "id": remote_id,
                "local_id": local_id,
                "sync_status": status.value,
            }
            result["record"] = confirmed
            out = []
            for r in items:
                if r is target:
                    out.append(confirmed)
                elif str(r.get("id")) == str(remote_id):
                    # Copy of the same remote document picked up by a read
                    continue
                else:
                    out.append(r)
            return out

        self._store.update(self.bucket_key(collection), _confirm, default=[])
        return result.get("record")

    def remove(self, collection: str, record_id: str) -> bool:
        removed = {"hit": False}

        def _remove(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            target = find_record(items, record_id)
            if target is None:
                return items
            removed["hit"] = True
            return [r for r in items if r is not target]

        self._store.update(self.bucket_key(collection), _remove, default=[])
        return removed["hit"]

    def merge(
        self,
        collection: str,
        remote_docs: List[Dict[str, Any]],
        filters: Optional[Sequence[Filter]] = None,
    ) -> List[Dict[str, Any]]:
        """Merge an authoritative query result; see records.merge_remote."""
        merged = self._store.update(
            self.bucket_key(collection),
            lambda items: merge_remote(items, remote_docs, filters),
            default=[],
        )
        logger.debug(f"Merged {len(remote_docs)} remote docs into {collection} cache ({len(merged)} cached)")
        return merged

    def with_status(self, collection: str, status: SyncStatus) -> List[Dict[str, Any]]:
        return [r for r in self.records(collection) if r.get("sync_status") == status.value]
