"""Booking request lifecycle schema.

Revision ID: 4b7e2c91d0a3
Revises:
Create Date: 2026-10-17 10:12:41.205318

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "4b7e2c91d0a3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLES = ("customer", "operator", "admin")
REQUESTER_KINDS = ("guest", "authenticated")
BOOKING_STATUSES = (
    "received",
    "contactingHospital",
    "proposedOptions",
    "confirmed",
    "cancelled",
    "needsMoreInfo",
    "noAvailability",
)

ENUM_TYPES = {
    "userrole": USER_ROLES,
    "requesterkind": REQUESTER_KINDS,
    "reviewrequesterkind": REQUESTER_KINDS,
    "bookingstatus": BOOKING_STATUSES,
}


def _enum(name: str) -> sa.Enum:
    # Types are created once up front; bookingstatus is shared by two tables.
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=26), primary_key=True),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("role", _enum("userrole"), nullable=False, server_default="customer"),
        sa.Column("display_name", sa.String(length=100)),
        sa.Column("locale", sa.String(length=5), nullable=False, server_default="en"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "booking_requests",
        sa.Column("booking_id", sa.String(length=26), primary_key=True),
        sa.Column("clinic_id", sa.String(length=64), nullable=False),
        sa.Column("requester_kind", _enum("requesterkind"), nullable=False),
        sa.Column("requester_user_id", sa.String(length=26), sa.ForeignKey("users.user_id", ondelete="RESTRICT")),
        sa.Column("guest_email", sa.String(length=254)),
        sa.Column("guest_phone", sa.String(length=32)),
        sa.Column("access_code", sa.String(length=16), unique=True),
        sa.Column("procedure", sa.String(length=200), nullable=False),
        sa.Column("preferred_date", sa.Date(), nullable=False),
        sa.Column("preferred_time_slot", sa.String(length=100)),
        sa.Column("budget_min", sa.Integer()),
        sa.Column("budget_max", sa.Integer()),
        sa.Column("budget_currency", sa.String(length=3)),
        sa.Column("notes", sa.Text()),
        sa.Column("locale", sa.String(length=5), nullable=False, server_default="en"),
        sa.Column("status", _enum("bookingstatus"), nullable=False),
        sa.Column("proposed_options", sa.JSON()),
        sa.Column("confirmed_date", sa.Date()),
        sa.Column("confirmed_time_slot", sa.String(length=100)),
        sa.Column("confirmed_price", sa.Integer()),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "(requester_kind = 'guest' AND guest_email IS NOT NULL AND access_code IS NOT NULL "
            "AND requester_user_id IS NULL) OR "
            "(requester_kind = 'authenticated' AND requester_user_id IS NOT NULL AND access_code IS NULL)",
            name="ck_booking_requests_single_requester",
        ),
        sa.CheckConstraint("confirmed_price IS NULL OR confirmed_price > 0", name="ck_booking_requests_price_positive"),
    )
    op.create_index("ix_booking_requests_clinic_id", "booking_requests", ["clinic_id"])
    op.create_index("ix_booking_requests_requester_user_id", "booking_requests", ["requester_user_id"])
    op.create_index("ix_booking_requests_guest_email", "booking_requests", ["guest_email"])
    op.create_index("ix_booking_requests_status_created", "booking_requests", ["status", "created_at"])

    op.create_table(
        "booking_status_events",
        sa.Column("event_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "booking_id",
            sa.String(length=26),
            sa.ForeignKey("booking_requests.booking_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("status", _enum("bookingstatus"), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("forced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("changed_by_user_id", sa.String(length=26), sa.ForeignKey("users.user_id", ondelete="SET NULL")),
        sa.UniqueConstraint("booking_id", "sequence", name="uq_booking_status_events_sequence"),
    )

    op.create_table(
        "reviews",
        sa.Column("review_id", sa.String(length=26), primary_key=True),
        sa.Column(
            "booking_id",
            sa.String(length=26),
            sa.ForeignKey("booking_requests.booking_id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("clinic_id", sa.String(length=64), nullable=False),
        sa.Column("requester_kind", _enum("reviewrequesterkind"), nullable=False),
        sa.Column("requester_user_id", sa.String(length=26), sa.ForeignKey("users.user_id", ondelete="SET NULL")),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("visit_date", sa.Date()),
        sa.Column("helpful_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        sa.CheckConstraint("helpful_count >= 0", name="ck_reviews_helpful_non_negative"),
    )
    op.create_index("ix_reviews_clinic_id", "reviews", ["clinic_id"])

    op.create_table(
        "review_helpful_votes",
        sa.Column(
            "review_id",
            sa.String(length=26),
            sa.ForeignKey("reviews.review_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            sa.String(length=26),
            sa.ForeignKey("users.user_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("review_helpful_votes")
    op.drop_index("ix_reviews_clinic_id", table_name="reviews")
    op.drop_table("reviews")
    op.drop_table("booking_status_events")
    op.drop_index("ix_booking_requests_status_created", table_name="booking_requests")
    op.drop_index("ix_booking_requests_guest_email", table_name="booking_requests")
    op.drop_index("ix_booking_requests_requester_user_id", table_name="booking_requests")
    op.drop_index("ix_booking_requests_clinic_id", table_name="booking_requests")
    op.drop_table("booking_requests")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
