"""Review API routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.core.deps import get_authorization_context, get_optional_user
from src.core.rate_limit import AccessAttemptLimiter, get_access_limiter
from src.modules.bookings.access import AuthorizationContext
from src.modules.reviews.schemas import (
    ClinicReviews,
    HelpfulResult,
    ReviewCreate,
    ReviewEligibility,
    ReviewPublic,
)
from src.modules.reviews.service import ReviewService
from src.modules.users.models import User
from src.shared.enums import ReviewSort
from src.shared.schemas import Page, ResponseEnvelope

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"])
eligibility_router = APIRouter(prefix="/api/v1/booking-requests", tags=["reviews"])
clinic_router = APIRouter(prefix="/api/v1/clinics", tags=["reviews"])


def get_service(
    db: AsyncSession = Depends(get_db),
    limiter: AccessAttemptLimiter = Depends(get_access_limiter),
) -> ReviewService:
    return ReviewService(db, limiter=limiter)


@router.post("", response_model=ResponseEnvelope[ReviewPublic], status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreate,
    current_user: User | None = Depends(get_optional_user),
    service: ReviewService = Depends(get_service),
) -> ResponseEnvelope[ReviewPublic]:
    review = await service.create_review(payload, current_user)
    return ResponseEnvelope(data=ReviewPublic.model_validate(review))


@router.post("/{review_id}/helpful", response_model=ResponseEnvelope[HelpfulResult])
async def mark_review_helpful(
    review_id: str,
    current_user: User | None = Depends(get_optional_user),
    service: ReviewService = Depends(get_service),
) -> ResponseEnvelope[HelpfulResult]:
    helpful_count = await service.mark_helpful(review_id, current_user)
    return ResponseEnvelope(data=HelpfulResult(review_id=review_id, helpful_count=helpful_count))


@eligibility_router.get("/{booking_id}/can-review", response_model=ResponseEnvelope[ReviewEligibility])
async def can_review_booking(
    booking_id: str,
    context: AuthorizationContext = Depends(get_authorization_context),
    service: ReviewService = Depends(get_service),
) -> ResponseEnvelope[ReviewEligibility]:
    return ResponseEnvelope(data=ReviewEligibility(can_review=await service.can_review(booking_id, context)))


@clinic_router.get("/{clinic_id}/reviews", response_model=ResponseEnvelope[ClinicReviews])
async def list_clinic_reviews(
    clinic_id: str,
    sort: ReviewSort = Query(default=ReviewSort.RECENT),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    service: ReviewService = Depends(get_service),
) -> ResponseEnvelope[ClinicReviews]:
    reviews, total, stats = await service.list_for_clinic(clinic_id, sort, page, limit)
    items = [ReviewPublic.model_validate(review) for review in reviews]
    return ResponseEnvelope(
        data=ClinicReviews(reviews=Page[ReviewPublic].build(items, total, page, limit), stats=stats)
    )
