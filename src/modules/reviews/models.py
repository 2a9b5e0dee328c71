"""Review ORM models."""

from __future__ import annotations

from datetime import date

from sqlalchemy import CheckConstraint, Date, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.enums import RequesterKind, enum_values
from src.shared.models import TimestampMixin
from src.shared.ulid import ULID_LENGTH, generate_ulid


class Review(Base, TimestampMixin):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        CheckConstraint("helpful_count >= 0", name="ck_reviews_helpful_non_negative"),
    )

    review_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    # At most one review per booking.
    booking_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("booking_requests.booking_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    clinic_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    requester_kind: Mapped[RequesterKind] = mapped_column(
        Enum(
            RequesterKind,
            values_callable=enum_values,
            validate_strings=True,
            name="reviewrequesterkind",
        ),
        nullable=False,
    )
    requester_user_id: Mapped[str | None] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("users.user_id", ondelete="SET NULL"),
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    visit_date: Mapped[date | None] = mapped_column(Date)
    helpful_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ReviewHelpfulVote(Base, TimestampMixin):
    """Remembers which signed-in users already marked a review helpful."""

    __tablename__ = "review_helpful_votes"

    review_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("reviews.review_id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(ULID_LENGTH),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
