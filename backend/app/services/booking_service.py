"""Booking service for paid coach sessions.

Booking a session is a check-then-act sequence: look for overlapping
confirmed bookings, then debit the session cost and insert the booking.
The whole sequence runs under the per-coach lock (plus a row lock on the
coach), and the debit and the insert share one transaction, so a calendar
never holds two overlapping confirmed sessions and a session is never
booked without being paid for.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import as_utc, utcnow
from app.core.exceptions import SlotConflictError, ValidationError
from app.core.locks import coach_key, coach_locks
from app.models.booking import Booking, BookingStatus
from app.schemas.booking import BookingCreate
from app.services.coach_service import CoachService
from app.services.pricing import (
    MAX_SESSION_HOURS,
    SESSION_DAY_END_HOUR,
    SESSION_DAY_START_HOUR,
    generate_available_slots,
    get_session_cost,
)
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)


def windows_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open interval overlap: sessions that only touch do not overlap."""
    return a_start < b_end and a_end > b_start


class BookingService:
    """Service for validating and creating coach session bookings."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.token_service = TokenService(db)
        self.coach_service = CoachService(db)

    async def create_booking(
        self, user_id: int, data: BookingCreate
    ) -> tuple[Booking, int]:
        """Validate, pay for and persist a session.

        Args:
            user_id: Booking user
            data: Requested coach, start and duration

        Returns:
            Tuple of (booking, balance after the debit)

        Raises:
            ValidationError: Invalid duration or a start that is not in the future
            NotFoundError: Unknown or inactive coach
            SlotConflictError: Overlaps a confirmed booking (nothing debited)
            InsufficientTokensError: Balance below the session cost
        """
        cost = get_session_cost(data.duration_hours)
        start = as_utc(data.date)
        if start <= utcnow():
            raise ValidationError("Booking date must be in the future")
        end = start + timedelta(hours=data.duration_hours)

        async with coach_locks.acquire(coach_key(data.coach_id)):
            try:
                await self.coach_service.get_active_coach(data.coach_id, for_update=True)
                conflicts = await self.find_conflicts(data.coach_id, start, data.duration_hours)
            except BaseException:
                await self.db.rollback()
                raise

            if conflicts:
                windows = [(b.starts_at, b.ends_at) for b in conflicts]
                await self.db.rollback()
                logger.info(
                    f"Booking rejected for user {user_id}: coach {data.coach_id} "
                    f"busy between {start.isoformat()} and {end.isoformat()}"
                )
                raise SlotConflictError(
                    coach_id=data.coach_id, start=start, end=end, conflicts=windows
                )

            meta = {
                "reason": "booking",
                "coach_id": data.coach_id,
                "coach_slug": data.coach_slug,
                "coach_name": data.coach_name,
                "date": start.isoformat(),
                "duration_hours": data.duration_hours,
            }
            async with self.token_service.spend(user_id, cost, meta) as transaction:
                booking = Booking(
                    user_id=user_id,
                    coach_id=data.coach_id,
                    coach_slug=data.coach_slug,
                    coach_name=data.coach_name,
                    date=start,
                    duration_hours=data.duration_hours,
                    status=BookingStatus.CONFIRMED,
                    tokens_charged=cost,
                    transaction_id=transaction.id,
                    notes=data.notes,
                )
                self.db.add(booking)
                await self.db.flush()

        new_balance = await self.token_service.get_user_balance(user_id)
        logger.info(
            f"Booking {booking.id} confirmed: user {user_id}, coach {data.coach_id}, "
            f"{start.isoformat()} for {data.duration_hours}h ({cost} tokens)"
        )
        return booking, new_balance

    async def find_conflicts(
        self, coach_id: str, start: datetime, duration_hours: int
    ) -> list[Booking]:
        """Confirmed bookings of ``coach_id`` overlapping the requested window.

        Only bookings starting within MAX_SESSION_HOURS before the requested
        start can reach into it, which bounds the query.
        """
        start = as_utc(start)
        end = start + timedelta(hours=duration_hours)
        candidates = await self._confirmed_bookings(
            coach_id, start - timedelta(hours=MAX_SESSION_HOURS), end
        )
        return [
            booking
            for booking in candidates
            if windows_overlap(booking.starts_at, booking.ends_at, start, end)
        ]

    async def get_available_slots(
        self, coach_id: str, day: date, duration_hours: int
    ) -> list[datetime]:
        """Free session starts for ``coach_id`` on ``day`` (UTC)."""
        hours = generate_available_slots(duration_hours)
        await self.coach_service.get_active_coach(coach_id)

        midnight = datetime.combine(day, time(0), tzinfo=timezone.utc)
        bookings = await self._confirmed_bookings(
            coach_id,
            midnight + timedelta(hours=SESSION_DAY_START_HOUR - MAX_SESSION_HOURS),
            midnight + timedelta(hours=SESSION_DAY_END_HOUR),
        )

        now = utcnow()
        slots = []
        for hour in hours:
            slot_start = midnight + timedelta(hours=hour)
            slot_end = slot_start + timedelta(hours=duration_hours)
            if slot_start <= now:
                continue
            if any(windows_overlap(b.starts_at, b.ends_at, slot_start, slot_end) for b in bookings):
                continue
            slots.append(slot_start)
        return slots

    async def list_bookings(self, user_id: int) -> list[Booking]:
        """The user's bookings, earliest session first."""
        stmt = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.date.asc(), Booking.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _confirmed_bookings(
        self, coach_id: str, starts_from: datetime, starts_before: datetime
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.coach_id == coach_id,
                Booking.status == BookingStatus.CONFIRMED,
                Booking.date >= starts_from,
                Booking.date < starts_before,
            )
            .order_by(Booking.date.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


def get_booking_service(db: AsyncSession) -> BookingService:
    return BookingService(db)
