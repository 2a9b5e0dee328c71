"""Booking lifecycle service layer."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.core.config import settings
from src.core.exceptions import BookingNotFound, Conflict, Unauthorized, ValidationFailed
from src.core.rate_limit import AccessAttemptLimiter, get_access_limiter
from src.core.security import access_codes_match, generate_access_code
from src.modules.bookings import lifecycle
from src.modules.bookings.access import AuthorizationContext, authorize_booking, email_throttle_key
from src.modules.bookings.models import BookingRequest, BookingStatusEvent
from src.modules.bookings.schemas import (
    BookingRequestCreate,
    OpsBookingView,
    OpsStats,
    SlaProjection,
    StatusTransitionIn,
)
from src.modules.bookings.sla import SlaPolicy, SlaSnapshot, compute_sla
from src.modules.clinics.directory import ClinicDirectory
from src.modules.users.models import User
from src.shared.clock import as_utc, utcnow
from src.shared.enums import BookingStatus, RequesterKind
from src.shared.ulid import looks_like_ulid

logger = logging.getLogger(__name__)

PENDING_STATUSES = frozenset(
    {
        BookingStatus.RECEIVED,
        BookingStatus.CONTACTING_HOSPITAL,
        BookingStatus.PROPOSED_OPTIONS,
        BookingStatus.NEEDS_MORE_INFO,
    }
)


class BookingService:
    def __init__(
        self,
        db: AsyncSession,
        limiter: AccessAttemptLimiter | None = None,
        directory: ClinicDirectory | None = None,
    ):
        self.db = db
        self.limiter = limiter or get_access_limiter()
        self.directory = directory or ClinicDirectory()
        self.sla_policy = SlaPolicy.from_settings()

    def _now(self) -> datetime:
        return utcnow()

    async def create(self, payload: BookingRequestCreate, user: User | None) -> BookingRequest:
        clinic = await self.directory.get_clinic(payload.clinic_id)
        if clinic is None:
            raise ValidationFailed("clinicId: unknown clinic")
        if user is None and payload.guest_email is None:
            raise ValidationFailed("guestEmail is required when booking without an account")

        for attempt in range(1, settings.access_code_generation_attempts + 1):
            booking = self._new_booking(payload, user)
            if booking.requester_kind == RequesterKind.GUEST:
                booking.access_code = await self._unused_access_code()
            self.db.add(booking)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if booking.requester_kind != RequesterKind.GUEST:
                    raise
                logger.warning("Access code collided on insert, regenerating (attempt %d)", attempt)
                continue
            logger.info(
                "Booking %s created for clinic %s by %s requester",
                booking.booking_id,
                booking.clinic_id,
                booking.requester_kind.value,
            )
            return booking
        raise Conflict("Could not allocate a unique access code, please retry")

    async def get(self, booking_id: str, context: AuthorizationContext) -> BookingRequest:
        booking = await self._find_booking(booking_id)
        return await authorize_booking(booking_id, booking, context, self.limiter)

    async def list_for_user(
        self,
        user: User,
        status: BookingStatus | None,
        page: int,
        limit: int,
    ) -> tuple[list[BookingRequest], int]:
        conditions = [
            BookingRequest.requester_kind == RequesterKind.AUTHENTICATED,
            BookingRequest.requester_user_id == user.user_id,
        ]
        if status is not None:
            conditions.append(BookingRequest.status == status)
        return await self._paginate(
            conditions,
            page,
            limit,
            (BookingRequest.created_at.desc(), BookingRequest.booking_id.desc()),
        )

    async def list_for_guest(
        self,
        email: str,
        access_code: str,
        status: BookingStatus | None,
        page: int,
        limit: int,
    ) -> tuple[list[BookingRequest], int]:
        """Guest bookings for ``email`` whose own access code matches.

        A code scopes to the booking it was issued for, so the result holds
        only the booking(s) that code opens, never every booking of the email.
        """
        key = email_throttle_key(email)
        await self.limiter.ensure_allowed(key)
        stmt = (
            select(BookingRequest)
            .where(
                BookingRequest.requester_kind == RequesterKind.GUEST,
                BookingRequest.guest_email == email.strip().lower(),
            )
            .order_by(BookingRequest.created_at.desc(), BookingRequest.booking_id.desc())
        )
        result = await self.db.execute(stmt)
        candidates = list(result.scalars().all())
        matches = [booking for booking in candidates if access_codes_match(access_code, booking.access_code)]
        if not matches:
            await self.limiter.record_failure(key)
            raise Unauthorized()
        await self.limiter.reset(key)

        if status is not None:
            matches = [booking for booking in matches if booking.status == status]
        start = (page - 1) * limit
        return matches[start : start + limit], len(matches)

    async def transition_status(
        self,
        booking_id: str,
        payload: StatusTransitionIn,
        actor: User,
    ) -> BookingRequest:
        """Move a booking to ``payload.status``.

        A concurrent write is retried once, and only while the booking is
        still in the status this request was validated against. Callers that
        pin ``expected_version`` always get the Conflict.
        """
        booking = await self._get_booking(booking_id)
        premise = booking.status
        retries_left = settings.transition_conflict_retries
        while True:
            try:
                return await self._apply_transition(booking, payload, actor)
            except Conflict:
                if payload.expected_version is not None or retries_left <= 0:
                    raise
                retries_left -= 1
                booking = await self._get_booking(booking_id, refresh=True)
                if booking.status != premise:
                    raise
                logger.info("Retrying transition of booking %s after a concurrent write", booking_id)

    async def ops_queue(
        self,
        status: BookingStatus | None,
        page: int,
        limit: int,
    ) -> tuple[list[BookingRequest], int]:
        conditions = []
        if status is not None:
            conditions.append(BookingRequest.status == status)
        return await self._paginate(
            conditions,
            page,
            limit,
            (BookingRequest.created_at.asc(), BookingRequest.booking_id.asc()),
        )

    async def ops_get(self, booking_id: str) -> BookingRequest:
        return await self._get_booking(booking_id)

    async def stats(self) -> OpsStats:
        result = await self.db.execute(
            select(BookingRequest.status, func.count(BookingRequest.booking_id)).group_by(BookingRequest.status)
        )
        counts = {status: 0 for status in BookingStatus}
        for status, count in result.all():
            counts[BookingStatus(status)] = count
        total = sum(counts.values())
        confirmed = counts[BookingStatus.CONFIRMED]
        return OpsStats(
            status_counts=counts,
            total_requests=total,
            conversion_rate=round(confirmed / total * 100, 1) if total else 0.0,
            pending=sum(counts[status] for status in PENDING_STATUSES),
        )

    def sla_for(self, booking: BookingRequest, now: datetime | None = None) -> SlaSnapshot:
        return compute_sla(
            booking.created_at,
            booking.first_response_at,
            now or self._now(),
            self.sla_policy,
        )

    def ops_view(self, booking: BookingRequest, now: datetime | None = None) -> OpsBookingView:
        sla = self.sla_for(booking, now)
        return OpsBookingView.model_validate(booking).model_copy(
            update={
                "sla": SlaProjection(
                    hours_elapsed=sla.hours_elapsed,
                    hours_remaining=sla.hours_remaining,
                    is_overdue=sla.is_overdue,
                ),
                "allowed_transitions": lifecycle.allowed_transitions(booking.status),
            }
        )

    async def _apply_transition(
        self,
        booking: BookingRequest,
        payload: StatusTransitionIn,
        actor: User,
    ) -> BookingRequest:
        booking_id = booking.booking_id
        if payload.expected_version is not None and booking.version != payload.expected_version:
            raise Conflict(f"Booking is at version {booking.version}, not {payload.expected_version}")
        if payload.force and not actor.can_force_transitions:
            raise Unauthorized("Only administrators can force a status change")

        previous = booking.status
        forced = lifecycle.check_transition(previous, payload.status, force=payload.force)
        lifecycle.check_transition_payload(payload.status, payload.proposed_options, payload.confirmed_option)

        now = self._next_timestamp(booking)
        booking.status = payload.status
        if payload.status == BookingStatus.PROPOSED_OPTIONS:
            booking.proposed_options = [option.model_dump(mode="json") for option in payload.proposed_options]
        elif payload.status == BookingStatus.CONFIRMED:
            option = payload.confirmed_option
            booking.confirmed_date = option.date
            booking.confirmed_time_slot = option.time_slot.strip()
            booking.confirmed_price = option.price
        booking.status_history.append(
            BookingStatusEvent(
                sequence=len(booking.status_history) + 1,
                status=payload.status,
                changed_at=now,
                note=lifecycle.history_note(payload.note, forced),
                forced=forced,
                changed_by_user_id=actor.user_id,
            )
        )
        booking.updated_at = now

        try:
            await self.db.commit()
        except (StaleDataError, IntegrityError) as exc:
            await self.db.rollback()
            logger.warning(
                "Concurrent write on booking %s while moving %s -> %s",
                booking_id,
                previous.value,
                payload.status.value,
            )
            raise Conflict() from exc

        logger.info(
            "Booking %s moved %s -> %s by %s%s",
            booking_id,
            previous.value,
            payload.status.value,
            actor.user_id,
            " (forced)" if forced else "",
        )
        return booking

    def _next_timestamp(self, booking: BookingRequest) -> datetime:
        """Now, but never earlier than the last history entry."""
        now = self._now()
        if booking.status_history:
            last = as_utc(booking.status_history[-1].changed_at)
            if last > now:
                return last
        return now

    def _new_booking(self, payload: BookingRequestCreate, user: User | None) -> BookingRequest:
        now = self._now()
        budget = payload.budget
        booking = BookingRequest(
            clinic_id=payload.clinic_id,
            procedure=payload.procedure,
            preferred_date=payload.preferred_date,
            preferred_time_slot=payload.preferred_time_slot,
            budget_min=budget.min if budget else None,
            budget_max=budget.max if budget else None,
            budget_currency=budget.currency if budget else None,
            notes=payload.notes,
            locale=payload.locale,
            status=lifecycle.INITIAL_STATUS,
            created_at=now,
            updated_at=now,
            status_history=[
                BookingStatusEvent(sequence=1, status=lifecycle.INITIAL_STATUS, changed_at=now),
            ],
        )
        if user is not None:
            booking.requester_kind = RequesterKind.AUTHENTICATED
            booking.requester_user_id = user.user_id
        else:
            booking.requester_kind = RequesterKind.GUEST
            booking.guest_email = str(payload.guest_email).strip().lower()
            booking.guest_phone = payload.guest_phone
        return booking

    async def _unused_access_code(self) -> str:
        for _ in range(settings.access_code_generation_attempts):
            code = generate_access_code()
            result = await self.db.execute(
                select(func.count(BookingRequest.booking_id)).where(BookingRequest.access_code == code)
            )
            if result.scalar_one() == 0:
                return code
        raise Conflict("Could not allocate a unique access code, please retry")

    async def _find_booking(self, booking_id: str, refresh: bool = False) -> BookingRequest | None:
        if not looks_like_ulid(booking_id):
            return None
        stmt = select(BookingRequest).where(BookingRequest.booking_id == booking_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_booking(self, booking_id: str, refresh: bool = False) -> BookingRequest:
        booking = await self._find_booking(booking_id, refresh=refresh)
        if booking is None:
            raise BookingNotFound()
        return booking

    async def _paginate(
        self,
        conditions: list,
        page: int,
        limit: int,
        order_by: tuple,
    ) -> tuple[list[BookingRequest], int]:
        count_result = await self.db.execute(select(func.count(BookingRequest.booking_id)).where(*conditions))
        total = count_result.scalar_one()
        stmt = (
            select(BookingRequest)
            .where(*conditions)
            .order_by(*order_by)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total
