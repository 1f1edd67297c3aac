"""
Domain repositories: offline-first access to bookings, announcements and
the service catalog
"""
from muni_core.repositories.base import DomainRepository
from muni_core.repositories.bookings import BookingRepository, BOOKINGS_COLLECTION
from muni_core.repositories.announcements import AnnouncementRepository, ANNOUNCEMENTS_COLLECTION
from muni_core.repositories.services import ServiceRepository, SERVICES_COLLECTION

__all__ = [
    "DomainRepository",
    "BookingRepository",
    "AnnouncementRepository",
    "ServiceRepository",
    "BOOKINGS_COLLECTION",
    "ANNOUNCEMENTS_COLLECTION",
    "SERVICES_COLLECTION",
]
