"""
Domain models for bookings, announcements and the service catalog
"""
from muni_core.domain.models import (
    Announcement,
    AnnouncementCategory,
    Booking,
    BookingStatus,
    Priority,
    Service,
    coerce_enum,
    is_expired_at,
)

__all__ = [
    "Announcement",
    "AnnouncementCategory",
    "Booking",
    "BookingStatus",
    "Priority",
    "Service",
    "coerce_enum",
    "is_expired_at",
]
