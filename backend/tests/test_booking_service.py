"""Tests for coach session bookings.

Tests cover:
- Overlap detection on half-open session windows
- Atomic debit and insert (a rejected booking costs nothing)
- Input validation (past dates, durations, unknown coaches)
- Concurrent bookings of the same slot
- Availability
"""

import asyncio
from datetime import datetime, time, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from app.core.database import utcnow
from app.core.exceptions import (
    InsufficientTokensError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from app.models.booking import Booking, BookingStatus
from app.models.coach import Coach
from app.schemas.booking import BookingCreate
from app.services.booking_service import BookingService, windows_overlap
from app.services.token_service import TokenService


DAY = (utcnow() + timedelta(days=3)).date()


def at(hour: int) -> datetime:
    return datetime.combine(DAY, time(hour), tzinfo=timezone.utc)


def booking_request(coach, hour: int, duration_hours: int = 1, **overrides) -> BookingCreate:
    values = dict(
        coach_id=coach.id,
        coach_slug=coach.slug,
        coach_name=coach.name,
        date=at(hour),
        duration_hours=duration_hours,
    )
    values.update(overrides)
    return BookingCreate(**values)


@pytest_asyncio.fixture
async def rich_user(db_session, test_user):
    await TokenService(db_session).record_topup(test_user.id, 100_000)
    return test_user


@pytest_asyncio.fixture
async def rich_other_user(db_session, other_user):
    await TokenService(db_session).record_topup(other_user.id, 100_000)
    return other_user


@pytest.fixture
def booking_service(db_session) -> BookingService:
    return BookingService(db_session)


async def _booking_count(db_session) -> int:
    return await db_session.scalar(select(func.count()).select_from(Booking))


class TestWindowsOverlap:
    def test_touching_windows_do_not_overlap(self):
        assert not windows_overlap(at(10), at(12), at(12), at(13))
        assert not windows_overlap(at(10), at(12), at(9), at(10))

    def test_contained_window_overlaps(self):
        assert windows_overlap(at(10), at(12), at(11), at(12))
        assert windows_overlap(at(10), at(11), at(9), at(12))


# ============================================================================
# Booking
# ============================================================================


@pytest.mark.asyncio
async def test_booking_debits_session_cost(booking_service, rich_user, test_coach):
    booking, balance = await booking_service.create_booking(
        rich_user.id, booking_request(test_coach, 10, 2, notes="Knee rehab")
    )

    assert booking.id is not None
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.tokens_charged == 20_000
    assert booking.transaction_id is not None
    assert booking.starts_at == at(10)
    assert booking.ends_at == at(12)
    assert balance == 80_000


@pytest.mark.asyncio
async def test_overlapping_booking_rejected(booking_service, rich_user, test_coach, db_session):
    user_id = rich_user.id
    await booking_service.create_booking(user_id, booking_request(test_coach, 10, 2))

    with pytest.raises(SlotConflictError) as exc:
        await booking_service.create_booking(user_id, booking_request(test_coach, 11, 1))

    assert exc.value.conflicts == [(at(10), at(12))]
    assert exc.value.to_detail()["error"] == "slot_conflict"
    assert await TokenService(db_session).get_user_balance(user_id) == 80_000
    assert await _booking_count(db_session) == 1


@pytest.mark.asyncio
async def test_booking_that_starts_before_and_runs_into_existing(booking_service, rich_user, test_coach):
    await booking_service.create_booking(rich_user.id, booking_request(test_coach, 10, 2))

    with pytest.raises(SlotConflictError):
        await booking_service.create_booking(rich_user.id, booking_request(test_coach, 9, 2))


@pytest.mark.asyncio
async def test_touching_bookings_accepted(booking_service, rich_user, test_coach, db_session):
    await booking_service.create_booking(rich_user.id, booking_request(test_coach, 10, 2))

    after, _ = await booking_service.create_booking(rich_user.id, booking_request(test_coach, 12, 1))
    before, balance = await booking_service.create_booking(rich_user.id, booking_request(test_coach, 9, 1))

    assert after.starts_at == at(12)
    assert before.starts_at == at(9)
    assert balance == 60_000
    assert await _booking_count(db_session) == 3


@pytest.mark.asyncio
async def test_conflict_applies_across_users(
    db_session, rich_user, rich_other_user, test_coach
):
    await BookingService(db_session).create_booking(
        rich_other_user.id, booking_request(test_coach, 10, 1)
    )

    with pytest.raises(SlotConflictError):
        await BookingService(db_session).create_booking(
            rich_user.id, booking_request(test_coach, 10, 1)
        )


@pytest.mark.asyncio
async def test_other_coach_is_independent(booking_service, rich_user, test_coach, db_session):
    second_coach = Coach(id="coach-marco", slug="marco-silva", name="Marco Silva")
    db_session.add(second_coach)
    await db_session.commit()

    await booking_service.create_booking(rich_user.id, booking_request(test_coach, 10, 1))
    booking, _ = await booking_service.create_booking(
        rich_user.id, booking_request(second_coach, 10, 1)
    )

    assert booking.coach_id == "coach-marco"


@pytest.mark.asyncio
async def test_cancelled_booking_frees_the_slot(booking_service, rich_user, test_coach, db_session):
    db_session.add(
        Booking(
            user_id=rich_user.id,
            coach_id=test_coach.id,
            coach_slug=test_coach.slug,
            coach_name=test_coach.name,
            date=at(10),
            duration_hours=1,
            status=BookingStatus.CANCELLED,
            tokens_charged=10_000,
        )
    )
    await db_session.commit()

    booking, _ = await booking_service.create_booking(rich_user.id, booking_request(test_coach, 10, 1))

    assert booking.status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_insufficient_tokens_books_nothing(booking_service, funded_user, test_coach, db_session):
    with pytest.raises(InsufficientTokensError) as exc:
        await booking_service.create_booking(funded_user.id, booking_request(test_coach, 10, 2))

    assert exc.value.required == 20_000
    assert exc.value.available == 15_000
    assert await _booking_count(db_session) == 0


@pytest.mark.asyncio
async def test_past_date_rejected(booking_service, rich_user, test_coach):
    request = booking_request(test_coach, 10, 1, date=utcnow() - timedelta(hours=1))

    with pytest.raises(ValidationError):
        await booking_service.create_booking(rich_user.id, request)


@pytest.mark.asyncio
@pytest.mark.parametrize("duration", [0, 4])
async def test_unsupported_duration_rejected(booking_service, rich_user, test_coach, duration):
    with pytest.raises(ValidationError):
        await booking_service.create_booking(
            rich_user.id, booking_request(test_coach, 10, duration)
        )


@pytest.mark.asyncio
async def test_unknown_coach_rejected(booking_service, rich_user, test_coach, db_session):
    user_id = rich_user.id
    request = booking_request(test_coach, 10, 1, coach_id="coach-nobody")

    with pytest.raises(NotFoundError):
        await booking_service.create_booking(user_id, request)
    assert await TokenService(db_session).get_user_balance(user_id) == 100_000


@pytest.mark.asyncio
async def test_concurrent_bookings_of_same_slot(session_factory, rich_user, rich_other_user, test_coach):
    """Two users race for 10:00; exactly one gets it."""

    async def book(user_id: int):
        async with session_factory() as session:
            return await BookingService(session).create_booking(
                user_id, booking_request(test_coach, 10, 1)
            )

    results = await asyncio.gather(
        book(rich_user.id), book(rich_other_user.id), return_exceptions=True
    )

    conflicts = [r for r in results if isinstance(r, SlotConflictError)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(conflicts) == 1
    assert len(successes) == 1

    async with session_factory() as session:
        confirmed = await session.scalar(
            select(func.count()).select_from(Booking).where(Booking.status == BookingStatus.CONFIRMED)
        )
        assert confirmed == 1


# ============================================================================
# Availability and listing
# ============================================================================


@pytest.mark.asyncio
async def test_available_slots_skip_booked_hours(booking_service, rich_user, test_coach):
    await booking_service.create_booking(rich_user.id, booking_request(test_coach, 10, 2))

    one_hour = await booking_service.get_available_slots(test_coach.id, DAY, 1)
    two_hours = await booking_service.get_available_slots(test_coach.id, DAY, 2)

    assert at(9) in one_hour
    assert at(10) not in one_hour
    assert at(11) not in one_hour
    assert at(12) in one_hour
    assert len(one_hour) == 10

    assert at(8) in two_hours
    assert at(9) not in two_hours
    assert at(12) in two_hours
    assert at(18) in two_hours
    assert at(19) not in two_hours


@pytest.mark.asyncio
async def test_list_bookings_earliest_first(booking_service, rich_user, test_coach):
    await booking_service.create_booking(rich_user.id, booking_request(test_coach, 15, 1))
    await booking_service.create_booking(rich_user.id, booking_request(test_coach, 9, 1))

    bookings = await booking_service.list_bookings(rich_user.id)

    assert [b.starts_at for b in bookings] == [at(9), at(15)]
