"""ORM models for the users domain."""

from __future__ import annotations

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base
from src.shared.enums import UserRole, enum_values
from src.shared.models import TimestampMixin
from src.shared.ulid import ULID_LENGTH, generate_ulid


class User(Base, TimestampMixin):
    """A signed-in account. Identity is issued by the external auth service.

    Customers own the bookings they create while signed in; operators and
    admins work the ops queue. Only admins may force a status change.
    """

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(ULID_LENGTH), primary_key=True, default=generate_ulid)
    email: Mapped[str] = mapped_column(String(254), unique=True, index=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=enum_values, validate_strings=True, name="userrole"),
        nullable=False,
        default=UserRole.CUSTOMER,
    )
    display_name: Mapped[str | None] = mapped_column(String(100))
    locale: Mapped[str] = mapped_column(String(5), default="en", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def can_force_transitions(self) -> bool:
        return self.role == UserRole.ADMIN
