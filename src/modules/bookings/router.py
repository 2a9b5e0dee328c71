"""Booking request API routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.core.deps import get_authorization_context, get_optional_user, require_ops
from src.core.exceptions import ValidationFailed
from src.core.rate_limit import AccessAttemptLimiter, get_access_limiter
from src.modules.bookings.access import AuthorizationContext
from src.modules.bookings.schemas import (
    BookingCreated,
    BookingListItem,
    BookingRequestCreate,
    BookingRequestPublic,
    OpsBookingView,
    OpsStats,
    StatusTransitionIn,
    TransitionResult,
)
from src.modules.bookings.service import BookingService
from src.modules.clinics.directory import ClinicDirectory, get_clinic_directory
from src.modules.users.models import User
from src.shared.enums import BookingStatus
from src.shared.schemas import Page, ResponseEnvelope

router = APIRouter(prefix="/api/v1/booking-requests", tags=["booking-requests"])
ops_router = APIRouter(prefix="/api/v1/ops", tags=["ops"])

GUEST_CREATED_MESSAGE = "Booking request received. Keep your access code to check its status."
ACCOUNT_CREATED_MESSAGE = "Booking request received. We will contact the clinic shortly."


def get_service(
    db: AsyncSession = Depends(get_db),
    limiter: AccessAttemptLimiter = Depends(get_access_limiter),
    directory: ClinicDirectory = Depends(get_clinic_directory),
) -> BookingService:
    return BookingService(db, limiter=limiter, directory=directory)


@router.post("", response_model=ResponseEnvelope[BookingCreated], status_code=status.HTTP_201_CREATED)
async def create_booking_request(
    payload: BookingRequestCreate,
    current_user: User | None = Depends(get_optional_user),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[BookingCreated]:
    booking = await service.create(payload, current_user)
    message = GUEST_CREATED_MESSAGE if booking.access_code else ACCOUNT_CREATED_MESSAGE
    return ResponseEnvelope(
        data=BookingCreated(
            booking_id=booking.booking_id,
            access_code=booking.access_code,
            status=booking.status,
            message=message,
        )
    )


@router.get("/my-requests", response_model=ResponseEnvelope[Page[BookingListItem]])
async def list_my_booking_requests(
    email: str | None = Query(default=None, max_length=254),
    access_code: str | None = Query(default=None, alias="accessCode"),
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User | None = Depends(get_optional_user),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[Page[BookingListItem]]:
    if current_user is not None:
        bookings, total = await service.list_for_user(current_user, status_filter, page, limit)
    else:
        if not email or not access_code or not access_code.strip():
            raise ValidationFailed("email and accessCode are required without a session")
        bookings, total = await service.list_for_guest(email, access_code, status_filter, page, limit)
    items = [BookingListItem.model_validate(booking) for booking in bookings]
    return ResponseEnvelope(data=Page[BookingListItem].build(items, total, page, limit))


@router.get("/{booking_id}", response_model=ResponseEnvelope[BookingRequestPublic])
async def get_booking_request(
    booking_id: str,
    context: AuthorizationContext = Depends(get_authorization_context),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[BookingRequestPublic]:
    booking = await service.get(booking_id, context)
    return ResponseEnvelope(data=BookingRequestPublic.model_validate(booking))


@ops_router.get("/booking-requests", response_model=ResponseEnvelope[Page[OpsBookingView]])
async def ops_list_booking_requests(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: User = Depends(require_ops),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[Page[OpsBookingView]]:
    bookings, total = await service.ops_queue(status_filter, page, limit)
    items = [service.ops_view(booking) for booking in bookings]
    return ResponseEnvelope(data=Page[OpsBookingView].build(items, total, page, limit))


@ops_router.get("/booking-requests/{booking_id}", response_model=ResponseEnvelope[OpsBookingView])
async def ops_get_booking_request(
    booking_id: str,
    _: User = Depends(require_ops),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[OpsBookingView]:
    booking = await service.ops_get(booking_id)
    return ResponseEnvelope(data=service.ops_view(booking))


@ops_router.post("/booking-requests/{booking_id}/status", response_model=ResponseEnvelope[TransitionResult])
async def ops_update_status(
    booking_id: str,
    payload: StatusTransitionIn,
    current_user: User = Depends(require_ops),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[TransitionResult]:
    booking = await service.transition_status(booking_id, payload, current_user)
    return ResponseEnvelope(
        data=TransitionResult(
            booking_id=booking.booking_id,
            status=booking.status,
            version=booking.version,
            message=f"Status updated to {booking.status.value}",
        )
    )


@ops_router.get("/stats", response_model=ResponseEnvelope[OpsStats])
async def ops_stats(
    _: User = Depends(require_ops),
    service: BookingService = Depends(get_service),
) -> ResponseEnvelope[OpsStats]:
    return ResponseEnvelope(data=await service.stats())
