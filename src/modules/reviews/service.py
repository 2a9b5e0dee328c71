"""Review eligibility, submission and listing."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.core.exceptions import Conflict, NotEligible, ReviewNotFound
from src.core.rate_limit import AccessAttemptLimiter, get_access_limiter
from src.modules.bookings.access import AuthorizationContext, build_context, verify_access
from src.modules.bookings.models import BookingRequest
from src.modules.reviews.models import Review, ReviewHelpfulVote
from src.modules.reviews.schemas import ReviewCreate, ReviewStats
from src.modules.users.models import User
from src.shared.clock import utcnow
from src.shared.enums import BookingStatus, ReviewSort
from src.shared.ulid import looks_like_ulid

logger = logging.getLogger(__name__)

RATING_VALUES = range(1, 6)

_SORT_ORDER = {
    ReviewSort.RECENT: (Review.created_at.desc(), Review.review_id.desc()),
    ReviewSort.RATING_HIGH: (Review.rating.desc(), Review.created_at.desc()),
    ReviewSort.RATING_LOW: (Review.rating.asc(), Review.created_at.desc()),
    ReviewSort.HELPFUL: (Review.helpful_count.desc(), Review.created_at.desc()),
}


class ReviewService:
    def __init__(self, db: AsyncSession, limiter: AccessAttemptLimiter | None = None):
        self.db = db
        self.limiter = limiter or get_access_limiter()

    def _now(self) -> datetime:
        return utcnow()

    async def can_review(self, booking_id: str, context: AuthorizationContext) -> bool:
        """Derived on every call, never stored."""
        booking = await self._find_booking(booking_id)
        return await self._ineligibility_reason(booking_id, booking, context) is None

    async def create_review(self, payload: ReviewCreate, user: User | None) -> Review:
        booking_id = payload.booking_id
        context = build_context(user, payload.access_code)
        for attempt in range(2):
            # Eligibility is rechecked against the database, not the identity map.
            booking = await self._find_booking(booking_id, refresh=True)
            reason = await self._ineligibility_reason(booking_id, booking, context)
            if reason is not None:
                raise NotEligible(reason)

            now = self._now()
            review = Review(
                booking_id=booking_id,
                clinic_id=booking.clinic_id,
                requester_kind=booking.requester_kind,
                requester_user_id=booking.requester_user_id,
                rating=payload.rating,
                title=payload.title,
                content=payload.content,
                visit_date=payload.visit_date or booking.confirmed_date,
                helpful_count=0,
                created_at=now,
                updated_at=now,
            )
            # Bumps the booking version so the write serializes with transitions.
            booking.reviewed_at = now
            self.db.add(review)
            try:
                await self.db.commit()
            except (StaleDataError, IntegrityError) as exc:
                await self.db.rollback()
                logger.warning("Concurrent write on booking %s while submitting a review", booking_id)
                if await self._review_exists(booking_id):
                    raise NotEligible("Booking has already been reviewed") from exc
                if attempt:
                    raise Conflict() from exc
                continue

            logger.info("Review %s created for booking %s (rating %d)", review.review_id, booking_id, review.rating)
            return review

    async def mark_helpful(self, review_id: str, user: User | None) -> int:
        """Count a helpful vote and return the new total.

        Signed-in users count once per review; anonymous votes always count.
        """
        if not await self._review_id_exists(review_id):
            raise ReviewNotFound()

        if user is not None:
            existing = await self.db.get(ReviewHelpfulVote, (review_id, user.user_id))
            if existing is not None:
                return await self._helpful_count(review_id)
            self.db.add(ReviewHelpfulVote(review_id=review_id, user_id=user.user_id))
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                return await self._helpful_count(review_id)

        await self.db.execute(
            update(Review)
            .where(Review.review_id == review_id)
            .values(helpful_count=Review.helpful_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return await self._helpful_count(review_id)

    async def list_for_clinic(
        self,
        clinic_id: str,
        sort: ReviewSort,
        page: int,
        limit: int,
    ) -> tuple[list[Review], int, ReviewStats]:
        stats = await self.clinic_stats(clinic_id)
        stmt = (
            select(Review)
            .where(Review.clinic_id == clinic_id)
            .order_by(*_SORT_ORDER[sort])
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), stats.total_reviews, stats

    async def clinic_stats(self, clinic_id: str) -> ReviewStats:
        result = await self.db.execute(
            select(Review.rating, func.count(Review.review_id))
            .where(Review.clinic_id == clinic_id)
            .group_by(Review.rating)
        )
        distribution = {rating: 0 for rating in RATING_VALUES}
        for rating, count in result.all():
            distribution[int(rating)] = count
        total = sum(distribution.values())
        weighted = sum(rating * count for rating, count in distribution.items())
        return ReviewStats(
            average_rating=round(weighted / total, 1) if total else 0.0,
            total_reviews=total,
            rating_distribution=distribution,
        )

    async def _ineligibility_reason(
        self,
        booking_id: str,
        booking: BookingRequest | None,
        context: AuthorizationContext,
    ) -> str | None:
        owns = await verify_access(booking_id, booking, context, self.limiter)
        if booking is None or not owns:
            return "Only the original requester can review this booking"
        if booking.status != BookingStatus.CONFIRMED:
            return "Only confirmed bookings can be reviewed"
        if booking.reviewed_at is not None or await self._review_exists(booking_id):
            return "Booking has already been reviewed"
        return None

    async def _find_booking(self, booking_id: str, refresh: bool = False) -> BookingRequest | None:
        if not looks_like_ulid(booking_id):
            return None
        stmt = select(BookingRequest).where(BookingRequest.booking_id == booking_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _review_exists(self, booking_id: str) -> bool:
        result = await self.db.execute(
            select(func.count(Review.review_id)).where(Review.booking_id == booking_id)
        )
        return result.scalar_one() > 0

    async def _review_id_exists(self, review_id: str) -> bool:
        result = await self.db.execute(select(Review.review_id).where(Review.review_id == review_id))
        return result.scalar_one_or_none() is not None

    async def _helpful_count(self, review_id: str) -> int:
        result = await self.db.execute(select(Review.helpful_count).where(Review.review_id == review_id))
        return result.scalar_one()
