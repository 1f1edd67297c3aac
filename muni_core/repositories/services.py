# =============================================================================
# muni_core/repositories/services.py
# Read-through repository for the municipal service catalog
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging

from muni_core.data.query import Filter, OrderSpec, sort_records
from muni_core.errors import ReadOnlyCollectionError
from muni_core.repositories.base import DomainRepository

logger = logging.getLogger(__name__)

SERVICES_COLLECTION = "services"


class ServiceRepository(DomainRepository):
    """
    The service catalog is maintained by administrators elsewhere; this
    client only reads it. No operations are ever queued for it, so every
    refresh replaces the cached catalog wholesale.
    """

    DATETIME_COLUMNS = ()

    def __init__(self, cache, queue, engine, monitor):
        super().__init__(SERVICES_COLLECTION, cache, queue, engine, monitor)

    def list_services(self, active_only: bool = True) -> List[Dict[str, Any]]:
        filters = [Filter("is_active", "==", True)] if active_only else None
        order = OrderSpec("name")
        return sort_records(self.list(filters, order), order)

    def get_service(self, service_id: str) -> Optional[Dict[str, Any]]:
        """Cached catalog entry, refreshing the catalog once if it is missing."""
        record = self.get(service_id)
        if record is None and self.is_online:
            self.list_services(active_only=False)
            record = self.get(service_id)
        return record

    def _reject_write(self, operation: str):
        raise ReadOnlyCollectionError(
            "The service catalog is read-only on this client",
            collection=self.collection,
            operation=operation,
        )

    def create(self, record: Dict[str, Any]) -> str:
        self._reject_write("create")

    def update(self, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        self._reject_write("update")

    def update_status(self, record_id: str, new_status: str) -> Dict[str, Any]:
        self._reject_write("update_status")

    def delete(self, record_id: str) -> None:
        self._reject_write("delete")
