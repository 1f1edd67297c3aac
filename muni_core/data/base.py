"""
Base Remote Document Store
Abstract interface for the networked, multi-collection document database
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from muni_core.data.query import Filter, OrderSpec


class RemoteDocumentStore(ABC):
    """
    Abstract base class for remote document stores.

    Implementations raise RemoteStoreError on connectivity loss or rejection.
    """

    @abstractmethod
    def create(self, collection: str, doc: Dict[str, Any]) -> str:
        """
        Insert a document

        Returns:
            The id assigned by the remote store
        """
        pass

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[OrderSpec] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching every filter, each with its ``id``"""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> None:
        """Apply a partial update to one document"""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete one document; deleting a missing document is not an error"""
        pass

    def find_by_client_ref(self, collection: str, client_ref: str) -> Optional[str]:
        """
        Id of a document created with this idempotency key, if the store can
        look it up. Default: lookup unsupported.
        """
        return None

    def is_available(self) -> bool:
        """Whether the store is configured and reachable enough to try"""
        return True
