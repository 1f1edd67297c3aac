# =============================================================================
# muni_core/repositories/announcements.py
# Offline-first repository for municipal announcements
# =============================================================================

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
import logging

from muni_core.data.query import Filter, OrderSpec, sort_records
from muni_core.domain.models import Announcement, AnnouncementCategory, coerce_enum, is_expired_at
from muni_core.repositories.base import DomainRepository

logger = logging.getLogger(__name__)

ANNOUNCEMENTS_COLLECTION = "announcements"


class AnnouncementRepository(DomainRepository):
    """Announcements posted by staff and read by residents."""

    DATETIME_COLUMNS = ("published_at", "expires_at", "created_at", "updated_at")

    def __init__(self, cache, queue, engine, monitor):
        super().__init__(ANNOUNCEMENTS_COLLECTION, cache, queue, engine, monitor)

    def post(self, announcement: Announcement) -> str:
        """
        Validate and publish an announcement, stamping published_at if unset.

        Returns:
            Placeholder id of the new announcement
        """
        if not announcement.published_at:
            announcement.published_at = self._now()
        announcement.validate()
        return self.create(announcement.to_payload())

    def list_active(
        self,
        category: Optional[Union[AnnouncementCategory, str]] = None,
    ) -> List[Dict[str, Any]]:
        """Active, unexpired announcements, newest first."""
        filters = [Filter("is_active", "==", True)]
        if category is not None:
            category = coerce_enum(AnnouncementCategory, category, "category")
            filters.append(Filter("category", "==", category.value))

        order = OrderSpec("published_at", descending=True)
        now = datetime.now()
        records = [r for r in self.list(filters, order) if not is_expired_at(r.get("expires_at"), now)]
        return sort_records(records, order)

    def deactivate(self, record_id: str) -> Dict[str, Any]:
        return self.update(record_id, {"is_active": False, "updated_at": self._now()})
