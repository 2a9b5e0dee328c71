"""Booking request ORM models."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database import Base
from src.shared.enums import BookingStatus, RequesterKind, enum_values
from src.shared.models import TimestampMixin
from src.shared.ulid import ULID_LENGTH, generate_ulid


def _status_type() -> Enum:
    return Enum(
        BookingStatus,
        values_callable=enum_values,
        validate_strings=True,
        name="bookingstatus",
    )


class BookingRequest(Base, TimestampMixin):
    __tablename__ = "booking_requests"
    __table_args__ = (
        CheckConstraint(
            "(requester_kind = 'guest' AND guest_email IS NOT NULL AND access_code IS NOT NULL "
            "AND requester_user_id IS NULL) OR "
            "(requester_kind = 'authenticated' AND requester_user_id IS NOT NULL AND access_code IS NULL)",
            name="ck_booking_requests_single_requester",
        ),
        CheckConstraint("confirmed_price IS NULL OR confirmed_price > 0", name="ck_booking_requests_price_positive"),
        Index("ix_booking_requests_status_created", "status", "created_at"),
    )

    booking_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    # Owned by the clinic service; referenced, never joined.
    clinic_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    requester_kind: Mapped[RequesterKind] = mapped_column(
        Enum(
            RequesterKind,
            values_callable=enum_values,
            validate_strings=True,
            name="requesterkind",
        ),
        nullable=False,
    )
    requester_user_id: Mapped[str | None] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("users.user_id", ondelete="RESTRICT"),
        index=True,
    )
    guest_email: Mapped[str | None] = mapped_column(String(254), index=True)
    guest_phone: Mapped[str | None] = mapped_column(String(32))
    access_code: Mapped[str | None] = mapped_column(String(16), unique=True)

    procedure: Mapped[str] = mapped_column(String(200), nullable=False)
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False)
    preferred_time_slot: Mapped[str | None] = mapped_column(String(100))
    budget_min: Mapped[int | None] = mapped_column(Integer)
    budget_max: Mapped[int | None] = mapped_column(Integer)
    budget_currency: Mapped[str | None] = mapped_column(String(3))
    notes: Mapped[str | None] = mapped_column(Text)
    locale: Mapped[str] = mapped_column(String(5), default="en", nullable=False)

    status: Mapped[BookingStatus] = mapped_column(_status_type(), nullable=False)
    proposed_options: Mapped[list[dict] | None] = mapped_column(JSON)
    confirmed_date: Mapped[date | None] = mapped_column(Date)
    confirmed_time_slot: Mapped[str | None] = mapped_column(String(100))
    confirmed_price: Mapped[int | None] = mapped_column(Integer)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    status_history: Mapped[list[BookingStatusEvent]] = relationship(
        back_populates="booking",
        order_by="BookingStatusEvent.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def budget(self) -> dict | None:
        if self.budget_min is None and self.budget_max is None:
            return None
        return {"min": self.budget_min, "max": self.budget_max, "currency": self.budget_currency}

    @property
    def confirmed_option(self) -> dict | None:
        if self.confirmed_date is None:
            return None
        return {"date": self.confirmed_date, "time_slot": self.confirmed_time_slot, "price": self.confirmed_price}

    @property
    def first_response_at(self) -> datetime | None:
        if len(self.status_history) < 2:
            return None
        return self.status_history[1].changed_at


class BookingStatusEvent(Base):
    """One immutable entry of a booking's status history."""

    __tablename__ = "booking_status_events"
    __table_args__ = (UniqueConstraint("booking_id", "sequence", name="uq_booking_status_events_sequence"),)

    event_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    booking_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("booking_requests.booking_id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(_status_type(), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    forced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    changed_by_user_id: Mapped[str | None] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("users.user_id", ondelete="SET NULL"),
    )

    booking: Mapped[BookingRequest] = relationship(back_populates="status_history")
