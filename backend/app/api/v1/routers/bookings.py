"""API routes for coach session bookings.

This module provides REST endpoints for:
- POST /api/v1/bookings - Pay for and book a session
- GET /api/v1/bookings - List the caller's bookings
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db
from app.core.exceptions import ServiceError
from app.models.user import User
from app.schemas.booking import BookingCreate, BookingCreateResponse, BookingResponse
from app.services.booking_service import get_booking_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingCreateResponse,
    summary="Book a coach session",
    description="Checks the coach's calendar, debits the session cost and stores the booking",
)
async def create_booking(
    request: BookingCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> BookingCreateResponse:
    """Book a session for the current user.

    Raises:
        HTTPException(400): Past date or unsupported duration
        HTTPException(404): Unknown coach
        HTTPException(409): ``insufficient_tokens`` or ``slot_conflict``
    """
    user_id = current_user.id
    booking_service = get_booking_service(db)
    try:
        booking, new_balance = await booking_service.create_booking(user_id, request)
    except ServiceError as e:
        logger.info(f"Booking rejected for user {user_id}: {e.code}")
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return BookingCreateResponse(
        booking=BookingResponse.model_validate(booking),
        new_balance=new_balance,
    )


@router.get(
    "",
    response_model=list[BookingResponse],
    summary="List bookings",
    description="The caller's bookings, earliest session first",
)
async def list_bookings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[BookingResponse]:
    bookings = await get_booking_service(db).list_bookings(current_user.id)
    return [BookingResponse.model_validate(booking) for booking in bookings]
