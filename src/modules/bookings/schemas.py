"""Booking request schemas."""

import datetime as dt
from typing import Annotated

from pydantic import EmailStr, Field, StringConstraints, model_validator

from src.shared.enums import BookingStatus, RequesterKind
from src.shared.schemas import ApiModel, UtcDateTime

Label = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class Budget(ApiModel):
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)
    currency: str = Field(default="KRW", min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_range(self) -> "Budget":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("budget min must not exceed max")
        return self


class ProposedOption(ApiModel):
    date: dt.date
    time_slot: Label
    price: int = Field(..., gt=0)
    note: str | None = Field(default=None, max_length=500)


class ConfirmedOptionIn(ApiModel):
    """Every field is optional here so that gaps surface as IncompleteConfirmation."""

    date: dt.date | None = None
    time_slot: str | None = Field(default=None, max_length=100)
    price: int | None = None


class ConfirmedOption(ApiModel):
    date: dt.date
    time_slot: str
    price: int


class StatusHistoryEntry(ApiModel):
    status: BookingStatus
    changed_at: UtcDateTime
    note: str | None = None
    forced: bool = False


class BookingRequestCreate(ApiModel):
    clinic_id: str = Field(..., min_length=1, max_length=64)
    procedure: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    preferred_date: dt.date
    preferred_time_slot: str | None = Field(default=None, max_length=100)
    budget: Budget | None = None
    guest_email: EmailStr | None = None
    guest_phone: str | None = Field(default=None, max_length=32)
    notes: str | None = Field(default=None, max_length=2000)
    locale: str = Field(default="en", pattern="^(en|ja|zh)$")


class BookingCreated(ApiModel):
    booking_id: str = Field(serialization_alias="id")
    access_code: str | None = None
    status: BookingStatus
    message: str


class BookingRequestPublic(ApiModel):
    booking_id: str = Field(serialization_alias="id")
    clinic_id: str
    requester_kind: RequesterKind
    procedure: str
    preferred_date: dt.date
    preferred_time_slot: str | None = None
    budget: Budget | None = None
    notes: str | None = None
    locale: str
    status: BookingStatus
    status_history: list[StatusHistoryEntry]
    proposed_options: list[ProposedOption] | None = None
    confirmed_option: ConfirmedOption | None = None
    access_code: str | None = None
    version: int
    created_at: UtcDateTime
    updated_at: UtcDateTime


class BookingListItem(ApiModel):
    booking_id: str = Field(serialization_alias="id")
    clinic_id: str
    procedure: str
    preferred_date: dt.date
    preferred_time_slot: str | None = None
    status: BookingStatus
    access_code: str | None = None
    confirmed_option: ConfirmedOption | None = None
    created_at: UtcDateTime


class SlaProjection(ApiModel):
    hours_elapsed: float
    hours_remaining: float
    is_overdue: bool


class OpsBookingView(BookingRequestPublic):
    requester_user_id: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None
    sla: SlaProjection | None = None
    allowed_transitions: list[BookingStatus] = []


class StatusTransitionIn(ApiModel):
    status: BookingStatus
    note: str | None = Field(default=None, max_length=1000)
    proposed_options: list[ProposedOption] | None = None
    confirmed_option: ConfirmedOptionIn | None = None
    force: bool = False
    expected_version: int | None = Field(default=None, ge=1)


class TransitionResult(ApiModel):
    booking_id: str = Field(serialization_alias="id")
    status: BookingStatus
    version: int
    message: str


class OpsStats(ApiModel):
    status_counts: dict[BookingStatus, int]
    total_requests: int
    conversion_rate: float
    pending: int
