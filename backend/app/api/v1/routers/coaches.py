"""API routes for the coach catalogue.

This module provides REST endpoints for:
- GET /api/v1/coaches - List active coaches
- GET /api/v1/coaches/{slug} - Get one coach
- GET /api/v1/coaches/{coach_id}/availability - Free session starts on a day
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.core.exceptions import ServiceError
from app.schemas.booking import AvailabilityResponse
from app.schemas.coach import CoachResponse
from app.services.booking_service import get_booking_service
from app.services.coach_service import CoachService

router = APIRouter(prefix="/coaches", tags=["coaches"])


@router.get("", response_model=list[CoachResponse], summary="List coaches")
async def list_coaches(db: AsyncSession = Depends(get_db)) -> list[CoachResponse]:
    coaches = await CoachService(db).list_coaches()
    return [CoachResponse.model_validate(coach) for coach in coaches]


@router.get("/{slug}", response_model=CoachResponse, summary="Get a coach")
async def get_coach(slug: str, db: AsyncSession = Depends(get_db)) -> CoachResponse:
    try:
        coach = await CoachService(db).get_by_slug(slug)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return CoachResponse.model_validate(coach)


@router.get(
    "/{coach_id}/availability",
    response_model=AvailabilityResponse,
    summary="Get coach availability",
    description="Free session start times (UTC) for a day and a session length",
)
async def get_availability(
    coach_id: str,
    day: date = Query(description="Day to check (YYYY-MM-DD, UTC)"),
    duration_hours: int = Query(default=1, description="Session length in hours (1, 2 or 3)"),
    db: AsyncSession = Depends(get_db),
) -> AvailabilityResponse:
    try:
        slots = await get_booking_service(db).get_available_slots(coach_id, day, duration_hours)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return AvailabilityResponse(
        coach_id=coach_id, day=day, duration_hours=duration_hours, slots=slots
    )
