# =============================================================================
# muni_core/offline/records.py
# Cached record helpers: sync status, placeholder ids and merge
# =============================================================================
"""
Cached records are plain JSON dicts: the domain fields plus ``id`` and
``sync_status``. Everything in this module is side-effect free so the merge
can be evaluated on a freshly read cache bucket inside LocalStore.update().
"""

from __future__ import annotations
import time
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from muni_core.data.query import Filter, matches_all

LOCAL_ID_PREFIX = "local_"


class SyncStatus(Enum):
    """Whether a cached record is confirmed by the remote store."""
    SYNCED = "synced"       # Matches last-known server state
    PENDING = "pending"     # Awaiting confirmation of a queued operation
    FAILED = "failed"       # Delivery gave up, shown as "did not sync"


def make_placeholder_id() -> str:
    """Local id for a record that has no remote id yet."""
    return f"{LOCAL_ID_PREFIX}{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def is_placeholder_id(record_id: Optional[str]) -> bool:
    return bool(record_id) and str(record_id).startswith(LOCAL_ID_PREFIX)


# =============================================================================
# MERGE
# =============================================================================

def merge_remote(
    current: List[Dict[str, Any]],
    remote_docs: List[Dict[str, Any]],
    filters: Optional[Sequence[Filter]] = None,
) -> List[Dict[str, Any]]:
    """
    Merge an authoritative query result into a cache bucket.

    - Remote docs are written as synced, overwriting synced cached copies.
    - Synced cached records inside the query's filter scope that the remote
      did not return are evicted.
    - Pending and failed records are never evicted or overwritten.
    - Cache order is kept; new remote docs are appended in result order.

    Args:
        current: Cache bucket as freshly read from the store
        remote_docs: Query result, each doc carrying its remote ``id``
        filters: Filters the query ran with (scope of eviction)

    Returns:
        The new bucket contents
    """
    remote_by_id = {}
    for doc in remote_docs:
        if doc.get("id") is None:
            continue
        remote_by_id[str(doc["id"])] = {
            **doc,
            "id": str(doc["id"]),
            "sync_status": SyncStatus.SYNCED.value,
        }

    merged: List[Dict[str, Any]] = []
    seen = set()
    unsynced_refs = set()

    for record in current:
        record_id = str(record.get("id"))
        status = record.get("sync_status", SyncStatus.SYNCED.value)

        if status != SyncStatus.SYNCED.value:
            merged.append(record)
            seen.add(record_id)
            unsynced_refs.add(record_id)
            if record.get("local_id"):
                unsynced_refs.add(record["local_id"])
            continue

        if record_id in remote_by_id:
            fresh = remote_by_id[record_id]
            if record.get("local_id") and "local_id" not in fresh:
                fresh["local_id"] = record["local_id"]
            merged.append(fresh)
            seen.add(record_id)
        elif not matches_all(record, filters):
            # Outside this query's scope: the result says nothing about it
            merged.append(record)
            seen.add(record_id)

    for record_id, doc in remote_by_id.items():
        if record_id in seen:
            continue
        # A create that reached the remote but was never dequeued; the local
        # record stands in for it until the replay resolves
        if doc.get("client_ref") in unsynced_refs:
            continue
        merged.append(doc)

    return merged


def find_record(
    records: Iterable[Dict[str, Any]],
    record_id: str,
) -> Optional[Dict[str, Any]]:
    """Look a record up by current id or by the placeholder it was created under."""
    record_id = str(record_id)
    for record in records:
        if str(record.get("id")) == record_id or record.get("local_id") == record_id:
            return record
    return None
