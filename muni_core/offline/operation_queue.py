# =============================================================================
# muni_core/offline/operation_queue.py
# Durable FIFO queue of mutations awaiting remote confirmation
# =============================================================================
"""
OperationQueue - write-ahead list of Create/Update/Delete operations.

The whole queue is one JSON list in the LocalStore under ``sync_queue``.
Every mutation re-reads the list inside LocalStore.update(), so the queue
never holds state that is not on disk.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging

from muni_core.offline.local_store import LocalStore

logger = logging.getLogger(__name__)

QUEUE_KEY = "sync_queue"

# Delivery attempts before an operation is dropped as permanently failed
MAX_ATTEMPTS = 3


class OperationKind(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def make_operation_id() -> str:
    """Creation-ordered id: epoch millis plus a random suffix."""
    return f"{int(time.time() * 1000)}_{uuid4().hex[:8]}"


@dataclass
class QueuedOperation:
    """A pending mutation of one remote document."""
    id: str
    kind: OperationKind
    collection: str
    target_id: Optional[str]
    payload: Dict[str, Any]
    enqueued_at: str = field(default_factory=lambda: datetime.now().isoformat())
    attempts: int = 0
    idempotency_key: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= MAX_ATTEMPTS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QueuedOperation:
        return cls(
            id=data["id"],
            kind=OperationKind(data["kind"]),
            collection=data["collection"],
            target_id=data.get("target_id"),
            payload=data.get("payload") or {},
            enqueued_at=data.get("enqueued_at") or datetime.now().isoformat(),
            attempts=int(data.get("attempts", 0)),
            idempotency_key=data.get("idempotency_key"),
            last_error=data.get("last_error"),
        )


class OperationQueue:
    """
    Persisted FIFO of QueuedOperation.

    Usage:
        queue = OperationQueue(store)
        op = queue.enqueue(OperationKind.UPDATE, "bookings", {"status": "approved"},
                           target_id="abc123")
        for op in queue.drain_snapshot():
            ...
    """

    def __init__(self, store: LocalStore, key: str = QUEUE_KEY):
        self._store = store
        self._key = key

    def _load(self) -> List[QueuedOperation]:
        return [QueuedOperation.from_dict(d) for d in self._store.get_json(self._key, [])]

    def enqueue(
        self,
        kind: OperationKind,
        collection: str,
        payload: Dict[str, Any],
        target_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> QueuedOperation:
        """
        Append an operation; it is on disk when this returns.

        Returns:
            The stored operation (id, enqueued_at and attempts assigned)
        """
        op = QueuedOperation(
            id=make_operation_id(),
            kind=kind,
            collection=collection,
            target_id=target_id,
            payload=dict(payload),
            idempotency_key=idempotency_key,
        )
        self._store.update(self._key, lambda items: items + [op.to_dict()], default=[])
        logger.debug(f"Queued {kind.value} on {collection}/{target_id} as {op.id}")
        return op

    def drain_snapshot(self) -> List[QueuedOperation]:
        """Current queue in enqueue order."""
        return self._load()

    def get(self, op_id: str) -> Optional[QueuedOperation]:
        for op in self._load():
            if op.id == op_id:
                return op
        return None

    def remove(self, op_id: str) -> None:
        """Drop a delivered operation."""
        self._store.update(
            self._key,
            lambda items: [d for d in items if d["id"] != op_id],
            default=[],
        )

    def mark_attempt(self, op_id: str, error: Optional[str] = None) -> Optional[QueuedOperation]:
        """
        Record a failed delivery attempt.

        Once attempts reach MAX_ATTEMPTS the operation leaves the queue; the
        returned operation then reports ``exhausted``.

        Returns:
            The operation with its new attempt count, or None if it was gone
        """
        result: Dict[str, Any] = {}

        def _bump(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            kept = []
            for d in items:
                if d["id"] == op_id:
                    d = {**d, "attempts": int(d.get("attempts", 0)) + 1, "last_error": error}
                    result["op"] = d
                    if d["attempts"] >= MAX_ATTEMPTS:
                        continue
                kept.append(d)
            return kept

        self._store.update(self._key, _bump, default=[])

        if "op" not in result:
            return None
        return QueuedOperation.from_dict(result["op"])

    def retarget(self, old_id: str, new_id: str) -> int:
        """
        Point queued operations at a record's new remote id.

        Returns:
            Number of operations rewritten
        """
        count = {"n": 0}

        def _rewrite(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            out = []
            for d in items:
                if d.get("target_id") == old_id:
                    d = {**d, "target_id": new_id}
                    count["n"] += 1
                out.append(d)
            return out

        self._store.update(self._key, _rewrite, default=[])
        return count["n"]

    def pending_for(self, collection: str, target_id: str) -> List[QueuedOperation]:
        return [
            op for op in self._load()
            if op.collection == collection and op.target_id == target_id
        ]

    def pending_count(self) -> int:
        return len(self._store.get_json(self._key, []))

    def __len__(self) -> int:
        return self.pending_count()
