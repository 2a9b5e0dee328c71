"""Proof-of-ownership for booking reads and reviews.

A caller reaches a booking either through a signed-in session that owns it or
through the guest access code issued at creation. Both paths are folded into
an ``AuthorizationContext`` so the services never branch on the caller type
themselves. Every access-code check goes through the attempt limiter.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.core.exceptions import BookingNotFound, Unauthorized
from src.core.rate_limit import AccessAttemptLimiter
from src.core.security import access_codes_match, normalize_access_code
from src.shared.enums import RequesterKind, UserRole

if TYPE_CHECKING:  # pragma: no cover
    from src.modules.bookings.models import BookingRequest
    from src.modules.users.models import User


class AuthorizationContext(ABC):
    access_code: str | None = None

    @property
    def presented_credentials(self) -> bool:
        return True

    @abstractmethod
    def owns(self, booking: BookingRequest) -> bool:
        """True when this caller is the booking's original requester."""


@dataclass(frozen=True)
class AnonymousContext(AuthorizationContext):
    @property
    def presented_credentials(self) -> bool:
        return False

    def owns(self, booking: BookingRequest) -> bool:
        return False


@dataclass(frozen=True)
class GuestCodeContext(AuthorizationContext):
    access_code: str

    def owns(self, booking: BookingRequest) -> bool:
        return booking.requester_kind == RequesterKind.GUEST and access_codes_match(
            self.access_code, booking.access_code
        )


@dataclass(frozen=True)
class SessionContext(AuthorizationContext):
    user_id: str
    role: UserRole
    access_code: str | None = None

    def owns(self, booking: BookingRequest) -> bool:
        if booking.requester_kind == RequesterKind.AUTHENTICATED:
            return booking.requester_user_id == self.user_id
        # A signed-in visitor may still open a guest booking with its code.
        return self.access_code is not None and access_codes_match(self.access_code, booking.access_code)


def build_context(user: User | None, access_code: str | None = None) -> AuthorizationContext:
    code = normalize_access_code(access_code) if access_code and access_code.strip() else None
    if user is not None:
        return SessionContext(user_id=user.user_id, role=user.role, access_code=code)
    if code:
        return GuestCodeContext(access_code=code)
    return AnonymousContext()


def booking_throttle_key(booking_id: str) -> str:
    return f"booking:{booking_id}"


def email_throttle_key(email: str) -> str:
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()
    return f"guest-email:{digest[:24]}"


async def verify_access(
    booking_id: str,
    booking: BookingRequest | None,
    context: AuthorizationContext,
    limiter: AccessAttemptLimiter,
) -> bool:
    """Return whether ``context`` owns the booking, counting code mismatches."""
    code_is_relevant = context.access_code is not None and (
        booking is None or booking.requester_kind == RequesterKind.GUEST
    )
    if not code_is_relevant:
        return booking is not None and context.owns(booking)

    key = booking_throttle_key(booking_id)
    await limiter.ensure_allowed(key)
    if booking is not None and context.owns(booking):
        await limiter.reset(key)
        return True
    await limiter.record_failure(key)
    return False


async def authorize_booking(
    booking_id: str,
    booking: BookingRequest | None,
    context: AuthorizationContext,
    limiter: AccessAttemptLimiter,
) -> BookingRequest:
    """Return the booking or raise without revealing whether it exists.

    ``BookingNotFound`` is only used when the caller presented no credential
    at all; every failed credential yields ``Unauthorized``.
    """
    if booking is None and not context.presented_credentials:
        raise BookingNotFound()
    if not await verify_access(booking_id, booking, context, limiter):
        raise Unauthorized()
    return booking
