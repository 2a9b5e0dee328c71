"""Shared enumerations used across modules."""

from __future__ import annotations

from enum import StrEnum
from typing import Iterable, TypeVar

EnumType = TypeVar("EnumType", bound=StrEnum)


def enum_values(enum_cls: Iterable[EnumType]) -> list[str]:
    """Return the .value for each enum member (used by SQLAlchemy)."""
    return [member.value for member in enum_cls]


class UserRole(StrEnum):
    CUSTOMER = "customer"
    OPERATOR = "operator"
    ADMIN = "admin"


class RequesterKind(StrEnum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class BookingStatus(StrEnum):
    RECEIVED = "received"
    CONTACTING_HOSPITAL = "contactingHospital"
    PROPOSED_OPTIONS = "proposedOptions"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    NEEDS_MORE_INFO = "needsMoreInfo"
    NO_AVAILABILITY = "noAvailability"


class ReviewSort(StrEnum):
    RECENT = "recent"
    RATING_HIGH = "rating-high"
    RATING_LOW = "rating-low"
    HELPFUL = "helpful"
