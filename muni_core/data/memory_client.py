"""
In-Memory Document Store
Mock provider for development without a Supabase project, and for tests
"""
import threading
from copy import deepcopy
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from muni_core.data.base import RemoteDocumentStore
from muni_core.errors import RemoteStoreError
from muni_core.data.query import Filter, OrderSpec, apply_filters, sort_records


class InMemoryDocumentStore(RemoteDocumentStore):
    """
    Dictionary-backed document store.

    ``online`` can be switched off to simulate an unreachable server; every
    call then raises RemoteStoreError. ``calls`` records (method, collection,
    id) tuples in call order.
    """

    def __init__(self, seed: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._lock = threading.Lock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.online = True
        self.calls: List[tuple] = []

        for collection, docs in (seed or {}).items():
            for doc in docs:
                doc = dict(doc)
                doc_id = str(doc.pop("id", None) or uuid4().hex)
                self._collections.setdefault(collection, {})[doc_id] = doc

    def _check_online(self, collection: str, operation: str) -> None:
        if not self.online:
            raise RemoteStoreError(
                "Remote store unreachable",
                collection=collection,
                operation=operation,
            )

    def create(self, collection: str, doc: Dict[str, Any]) -> str:
        with self._lock:
            self._check_online(collection, "create")
            doc_id = uuid4().hex[:20]
            self._collections.setdefault(collection, {})[doc_id] = deepcopy(
                {k: v for k, v in doc.items() if k != "id"}
            )
            self.calls.append(("create", collection, doc_id))
            return doc_id

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[OrderSpec] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            self._check_online(collection, "query")
            self.calls.append(("query", collection, None))
            docs = [
                {**deepcopy(doc), "id": doc_id}
                for doc_id, doc in self._collections.get(collection, {}).items()
            ]
        return sort_records(apply_filters(docs, filters), order)

    def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:
        with self._lock:
            self._check_online(collection, "update")
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise RemoteStoreError(
                    f"No document {doc_id}",
                    collection=collection,
                    operation="update",
                )
            docs[doc_id].update(deepcopy(patch))
            self.calls.append(("update", collection, doc_id))

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._check_online(collection, "delete")
            self._collections.get(collection, {}).pop(doc_id, None)
            self.calls.append(("delete", collection, doc_id))

    def find_by_client_ref(self, collection: str, client_ref: str) -> Optional[str]:
        with self._lock:
            self._check_online(collection, "find_by_client_ref")
            for doc_id, doc in self._collections.get(collection, {}).items():
                if doc.get("client_ref") == client_ref:
                    return doc_id
        return None

    def is_available(self) -> bool:
        return self.online

    def documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Snapshot of a collection keyed by id."""
        with self._lock:
            return deepcopy(self._collections.get(collection, {}))
