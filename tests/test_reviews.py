import re

import pytest

from src.core.exceptions import NotEligible, ReviewNotFound
from src.modules.bookings.access import AnonymousContext, GuestCodeContext, SessionContext
from src.modules.bookings.schemas import BookingRequestCreate, StatusTransitionIn
from src.modules.bookings.service import BookingService
from src.modules.reviews.schemas import ReviewCreate
from src.modules.reviews.service import ReviewService
from src.shared.enums import BookingStatus, ReviewSort, UserRole
from src.shared.ulid import generate_ulid

CONFIRM_STEPS = (
    StatusTransitionIn(status=BookingStatus.CONTACTING_HOSPITAL),
    StatusTransitionIn.model_validate(
        {
            "status": "proposedOptions",
            "proposedOptions": [{"date": "2025-06-03", "timeSlot": "Morning", "price": 500000}],
        }
    ),
    StatusTransitionIn.model_validate(
        {
            "status": "confirmed",
            "confirmedOption": {"date": "2025-06-03", "timeSlot": "Morning", "price": 500000},
        }
    ),
)


@pytest.fixture
def services(db_session, limiter, clinic_directory):
    return (
        BookingService(db_session, limiter=limiter, directory=clinic_directory),
        ReviewService(db_session, limiter=limiter),
    )


async def _confirmed_guest_booking(booking_service, operator, clinic_id="clinic-gangnam"):
    booking = await booking_service.create(
        BookingRequestCreate.model_validate(
            {
                "clinicId": clinic_id,
                "procedure": "Rhinoplasty (Nose)",
                "preferredDate": "2025-06-01",
                "guestEmail": "a@x.com",
            }
        ),
        None,
    )
    for step in CONFIRM_STEPS:
        booking = await booking_service.transition_status(booking.booking_id, step, operator)
    return booking


def _review(booking, rating=5, title="Great", content="Loved it", **extra) -> ReviewCreate:
    return ReviewCreate(
        booking_id=booking.booking_id,
        rating=rating,
        title=title,
        content=content,
        access_code=booking.access_code,
        **extra,
    )


@pytest.mark.asyncio
async def test_guest_booking_to_single_review(db_session, services, make_user):
    booking_service, review_service = services
    operator = await make_user(db_session, UserRole.OPERATOR)

    booking = await booking_service.create(
        BookingRequestCreate.model_validate(
            {
                "clinicId": "clinic-gangnam",
                "procedure": "Rhinoplasty (Nose)",
                "preferredDate": "2025-06-01",
                "guestEmail": "a@x.com",
            }
        ),
        None,
    )
    assert booking.status == BookingStatus.RECEIVED
    assert re.match(r"^[A-Z0-9]{8}$", booking.access_code)
    assert len(booking.status_history) == 1
    guest = GuestCodeContext(access_code=booking.access_code)
    assert await review_service.can_review(booking.booking_id, guest) is False

    history_lengths = []
    for step in CONFIRM_STEPS:
        booking = await booking_service.transition_status(booking.booking_id, step, operator)
        history_lengths.append(len(booking.status_history))
    assert history_lengths == [2, 3, 4]
    assert booking.status == BookingStatus.CONFIRMED
    assert await review_service.can_review(booking.booking_id, guest) is True

    review = await review_service.create_review(_review(booking), None)
    assert review.rating == 5
    assert review.clinic_id == "clinic-gangnam"
    assert review.visit_date == booking.confirmed_date
    assert await review_service.can_review(booking.booking_id, guest) is False

    with pytest.raises(NotEligible):
        await review_service.create_review(_review(booking, title="Again"), None)


@pytest.mark.asyncio
async def test_unconfirmed_booking_cannot_be_reviewed(db_session, services, make_user):
    booking_service, review_service = services
    admin = await make_user(db_session, UserRole.ADMIN)
    booking = await _confirmed_guest_booking(booking_service, admin)
    await booking_service.transition_status(
        booking.booking_id,
        StatusTransitionIn(status=BookingStatus.CANCELLED, note="Clinic closed"),
        admin,
    )

    with pytest.raises(NotEligible) as excinfo:
        await review_service.create_review(_review(booking), None)
    assert "confirmed" in excinfo.value.detail


@pytest.mark.asyncio
async def test_only_the_requester_can_review(db_session, services, make_user):
    booking_service, review_service = services
    operator = await make_user(db_session, UserRole.OPERATOR)
    owner = await make_user(db_session)
    stranger = await make_user(db_session)

    booking = await booking_service.create(
        BookingRequestCreate.model_validate(
            {"clinicId": "clinic-sinsa", "procedure": "Lifting", "preferredDate": "2025-06-01"}
        ),
        owner,
    )
    for step in CONFIRM_STEPS:
        booking = await booking_service.transition_status(booking.booking_id, step, operator)

    assert await review_service.can_review(booking.booking_id, AnonymousContext()) is False
    assert (
        await review_service.can_review(
            booking.booking_id, SessionContext(user_id=stranger.user_id, role=stranger.role)
        )
        is False
    )
    with pytest.raises(NotEligible):
        await review_service.create_review(_review(booking), stranger)

    review = await review_service.create_review(_review(booking), owner)
    assert review.requester_user_id == owner.user_id


@pytest.mark.asyncio
async def test_unknown_booking_is_not_reviewable(services):
    _, review_service = services
    assert await review_service.can_review(generate_ulid(), AnonymousContext()) is False
    assert await review_service.can_review("not-a-booking", AnonymousContext()) is False


@pytest.mark.asyncio
async def test_helpful_votes_count_once_per_user(db_session, services, make_user):
    booking_service, review_service = services
    operator = await make_user(db_session, UserRole.OPERATOR)
    reader = await make_user(db_session)
    booking = await _confirmed_guest_booking(booking_service, operator)
    review = await review_service.create_review(_review(booking), None)

    assert await review_service.mark_helpful(review.review_id, reader) == 1
    assert await review_service.mark_helpful(review.review_id, reader) == 1
    assert await review_service.mark_helpful(review.review_id, None) == 2
    assert await review_service.mark_helpful(review.review_id, None) == 3

    with pytest.raises(ReviewNotFound):
        await review_service.mark_helpful(generate_ulid(), None)


@pytest.mark.asyncio
async def test_clinic_reviews_sort_and_stats(db_session, services, make_user):
    booking_service, review_service = services
    operator = await make_user(db_session, UserRole.OPERATOR)
    ratings = [5, 3, 4]
    reviews = []
    for rating in ratings:
        booking = await _confirmed_guest_booking(booking_service, operator)
        reviews.append(await review_service.create_review(_review(booking, rating=rating), None))
    other = await _confirmed_guest_booking(booking_service, operator, clinic_id="clinic-sinsa")
    await review_service.create_review(_review(other, rating=1), None)
    await review_service.mark_helpful(reviews[1].review_id, None)

    items, total, stats = await review_service.list_for_clinic("clinic-gangnam", ReviewSort.RATING_HIGH, 1, 10)
    assert total == 3
    assert [item.rating for item in items] == [5, 4, 3]
    assert stats.average_rating == 4.0
    assert stats.rating_distribution == {1: 0, 2: 0, 3: 1, 4: 1, 5: 1}

    items, _, _ = await review_service.list_for_clinic("clinic-gangnam", ReviewSort.RATING_LOW, 1, 2)
    assert [item.rating for item in items] == [3, 4]

    items, _, _ = await review_service.list_for_clinic("clinic-gangnam", ReviewSort.HELPFUL, 1, 1)
    assert items[0].review_id == reviews[1].review_id

    items, total, stats = await review_service.list_for_clinic("clinic-empty", ReviewSort.RECENT, 1, 10)
    assert items == []
    assert total == 0
    assert stats.average_rating == 0.0


async def _confirmed_booking_in(session_factory, limiter, clinic_directory, make_user):
    async with session_factory() as setup:
        operator = await make_user(setup, UserRole.OPERATOR)
        booking_service = BookingService(setup, limiter=limiter, directory=clinic_directory)
        booking = await _confirmed_guest_booking(booking_service, operator)
        return operator, booking.booking_id, booking.access_code


def _write_after_eligibility_check(review_service, concurrent_write):
    check = review_service._ineligibility_reason
    calls = []

    async def checked(*args):
        reason = await check(*args)
        if not calls:
            calls.append(reason)
            await concurrent_write()
        return reason

    review_service._ineligibility_reason = checked
    return calls


@pytest.mark.asyncio
async def test_review_racing_a_cancellation_is_refused(session_factory, limiter, clinic_directory, make_user):
    operator, booking_id, access_code = await _confirmed_booking_in(session_factory, limiter, clinic_directory, make_user)

    async with session_factory() as session_a, session_factory() as session_b:
        booking_service_a = BookingService(session_a, limiter=limiter, directory=clinic_directory)
        review_service_b = ReviewService(session_b, limiter=limiter)

        async def cancel():
            await booking_service_a.transition_status(
                booking_id, StatusTransitionIn(status=BookingStatus.CANCELLED), operator
            )

        calls = _write_after_eligibility_check(review_service_b, cancel)
        payload = ReviewCreate(booking_id=booking_id, rating=5, title="Great", content="Loved it", access_code=access_code)
        with pytest.raises(NotEligible) as excinfo:
            await review_service_b.create_review(payload, None)
        assert excinfo.value.detail == "Only confirmed bookings can be reviewed"
        assert calls == [None]

    async with session_factory() as check:
        fresh = await BookingService(check, limiter=limiter, directory=clinic_directory).ops_get(booking_id)
        assert fresh.status == BookingStatus.CANCELLED
        assert fresh.reviewed_at is None
        assert await ReviewService(check, limiter=limiter)._review_exists(booking_id) is False


@pytest.mark.asyncio
async def test_review_retries_after_an_unrelated_booking_write(session_factory, limiter, clinic_directory, make_user):
    _, booking_id, access_code = await _confirmed_booking_in(session_factory, limiter, clinic_directory, make_user)

    async with session_factory() as session_a, session_factory() as session_b:
        booking_service_a = BookingService(session_a, limiter=limiter, directory=clinic_directory)
        review_service_b = ReviewService(session_b, limiter=limiter)

        async def edit_notes():
            booking = await booking_service_a.ops_get(booking_id)
            booking.notes = "Prefers a morning slot"
            await session_a.commit()

        _write_after_eligibility_check(review_service_b, edit_notes)
        payload = ReviewCreate(booking_id=booking_id, rating=4, title="Good", content="Smooth visit", access_code=access_code)
        review = await review_service_b.create_review(payload, None)
        assert review.booking_id == booking_id

    async with session_factory() as check:
        fresh = await BookingService(check, limiter=limiter, directory=clinic_directory).ops_get(booking_id)
        assert fresh.status == BookingStatus.CONFIRMED
        assert fresh.notes == "Prefers a morning slot"
        assert fresh.reviewed_at is not None
        assert await ReviewService(check, limiter=limiter)._review_exists(booking_id) is True
