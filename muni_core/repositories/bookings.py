# =============================================================================
# muni_core/repositories/bookings.py
# Offline-first repository for service bookings
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List, Union
import logging

from muni_core.data.query import Filter, OrderSpec, sort_records
from muni_core.domain.models import Booking, BookingStatus, coerce_enum
from muni_core.repositories.base import DomainRepository

logger = logging.getLogger(__name__)

BOOKINGS_COLLECTION = "bookings"


class BookingRepository(DomainRepository):
    """
    Bookings made by residents and reviewed by staff.

    Usage:
        booking_id = repo.create_booking(Booking(user_id="u1", service_id="s1",
                                                 date="2025-03-01", time="09:30"))
        repo.update_status(booking_id, BookingStatus.APPROVED)
    """

    DATETIME_COLUMNS = ("created_at", "updated_at")

    def __init__(self, cache, queue, engine, monitor):
        super().__init__(BOOKINGS_COLLECTION, cache, queue, engine, monitor)

    def create_booking(self, booking: Booking) -> str:
        """
        Validate and store a new booking; new bookings always start pending.

        Raises:
            DataValidationError: missing fields or malformed date/time
        """
        booking.status = BookingStatus.PENDING
        booking.validate()
        return self.create(booking.to_payload())

    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        order = OrderSpec("date", descending=True)
        return sort_records(self.list([Filter("user_id", "==", user_id)], order), order)

    def list_for_date(self, date: str) -> List[Dict[str, Any]]:
        """Bookings on one day, earliest slot first."""
        order = OrderSpec("time")
        return sort_records(self.list([Filter("date", "==", date)], order), order)

    def list_all(self) -> List[Dict[str, Any]]:
        order = OrderSpec("date", descending=True)
        return sort_records(self.list(order=order), order)

    def update_status(self, record_id: str, new_status: Union[BookingStatus, str]) -> Dict[str, Any]:
        """
        Raises:
            DataValidationError: new_status is not a BookingStatus value
            RecordNotFoundError: unknown booking id
        """
        status = coerce_enum(BookingStatus, new_status, "status")
        return self.update(record_id, {"status": status.value, "updated_at": self._now()})

    def add_note(self, record_id: str, notes: str) -> Dict[str, Any]:
        return self.update(record_id, {"notes": notes, "updated_at": self._now()})
