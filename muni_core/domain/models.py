# =============================================================================
# muni_core/domain/models.py
# Domain records: bookings, announcements, service catalog entries
# Provides validation and conversion to remote document payloads
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type
import logging

from muni_core.errors import DataValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class BookingStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AnnouncementCategory(Enum):
    GENERAL = "general"
    EMERGENCY = "emergency"
    EVENT = "event"
    MAINTENANCE = "maintenance"
    HEALTH = "health"


class Priority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def coerce_enum(enum_cls: Type[Enum], value: Any, field_name: str) -> Enum:
    """Accept an enum member or its string value."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise DataValidationError(
            f"Invalid {field_name}: {value!r}",
            field=field_name,
            expected=" | ".join(m.value for m in enum_cls),
            actual=str(value),
        ) from None


def _require(obj: Any, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise DataValidationError(
                f"'{name}' is required",
                field=name,
                expected="non-empty value",
                actual=repr(value),
            )


def _check_format(value: str, fmt: str, field_name: str, label: str) -> None:
    try:
        datetime.strptime(value, fmt)
    except (TypeError, ValueError):
        raise DataValidationError(
            f"'{field_name}' must be {label}",
            field=field_name,
            expected=label,
            actual=str(value),
        ) from None


def _check_timestamp(value: Optional[str], field_name: str) -> None:
    if value is None:
        return
    try:
        datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise DataValidationError(
            f"'{field_name}' must be an ISO-8601 timestamp",
            field=field_name,
            expected="ISO-8601",
            actual=str(value),
        ) from None


def is_expired_at(expires_at: Optional[str], now: Optional[datetime] = None) -> bool:
    """
    Whether an ISO-8601 expiry has passed.

    Naive timestamps are local time; a naive ``now`` is compared with an
    aware expiry in the system timezone, and the other way round. An
    unparseable expiry never expires.
    """
    if not expires_at:
        return False
    try:
        expires = datetime.fromisoformat(expires_at)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable expires_at: {expires_at!r}")
        return False

    if now is None:
        now = datetime.now(expires.tzinfo)
    elif expires.tzinfo is not None and now.tzinfo is None:
        now = now.astimezone(expires.tzinfo)
    elif expires.tzinfo is None and now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    return expires <= now


def _now() -> str:
    return datetime.now().isoformat()


class _Record:
    """Shared payload/record conversion for the dataclasses below."""

    def to_payload(self) -> Dict[str, Any]:
        """Document body for the remote store: enums as values, no id."""
        payload = {}
        for f in fields(self):
            if f.name == "id":
                continue
            value = getattr(self, f.name)
            payload[f.name] = value.value if isinstance(value, Enum) else value
        return payload

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        """Build from a cached record, ignoring sync bookkeeping fields."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in known})


# =============================================================================
# BOOKING
# =============================================================================

@dataclass
class Booking(_Record):
    """A resident's appointment for a municipal service."""
    user_id: str
    service_id: str
    date: str                                   # YYYY-MM-DD
    time: str                                   # HH:MM
    status: BookingStatus = BookingStatus.PENDING
    notes: Optional[str] = None
    attachment_url: Optional[str] = None
    district: Optional[str] = None
    barangay: Optional[str] = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    id: Optional[str] = None

    def validate(self) -> Booking:
        _require(self, "user_id", "service_id", "date", "time")
        _check_format(self.date, DATE_FORMAT, "date", "YYYY-MM-DD")
        _check_format(self.time, TIME_FORMAT, "time", "HH:MM")
        self.status = coerce_enum(BookingStatus, self.status, "status")
        return self


# =============================================================================
# ANNOUNCEMENT
# =============================================================================

@dataclass
class Announcement(_Record):
    """A notice posted by municipal staff."""
    title: str
    content: str
    category: AnnouncementCategory = AnnouncementCategory.GENERAL
    priority: Priority = Priority.NORMAL
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    is_active: bool = True
    published_at: Optional[str] = None
    expires_at: Optional[str] = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    id: Optional[str] = None

    def validate(self) -> Announcement:
        _require(self, "title", "content")
        self.category = coerce_enum(AnnouncementCategory, self.category, "category")
        self.priority = coerce_enum(Priority, self.priority, "priority")
        _check_timestamp(self.published_at, "published_at")
        _check_timestamp(self.expires_at, "expires_at")
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return is_expired_at(self.expires_at, now)


# =============================================================================
# SERVICE CATALOG
# =============================================================================

@dataclass
class Service(_Record):
    """An entry of the municipal service catalog (read-only on the client)."""
    name: str
    description: str = ""
    requirements: List[str] = field(default_factory=list)
    fee: float = 0.0
    estimated_duration: int = 0                 # minutes
    is_active: bool = True
    id: Optional[str] = None
