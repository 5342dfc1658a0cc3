"""API routes for price quotes.

Quotes have no side effects and need no authentication:
- POST /api/v1/pricing/coach-request - Quote a coach request
- POST /api/v1/pricing/course - Quote an AI-generated course
- GET /api/v1/pricing/session - Quote a coach session
"""

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from app.core.exceptions import ServiceError
from app.schemas.coach_request import CoachRequestCostBreakdownResponse, CoachRequestSelections
from app.schemas.course import CourseCostBreakdownResponse, CourseOptions
from app.services.pricing import (
    HOURLY_RATE,
    REGENERATION_COSTS,
    calc_coach_request_tokens,
    generate_course_title,
    get_session_cost,
)

router = APIRouter(prefix="/pricing", tags=["pricing"])


class CourseQuoteResponse(CourseCostBreakdownResponse):
    title: str
    regeneration: dict[str, int]


class SessionQuoteResponse(BaseModel):
    duration_hours: int
    hourly_rate: int
    total: int


@router.post(
    "/coach-request",
    response_model=CoachRequestCostBreakdownResponse,
    summary="Quote a coach request",
)
async def quote_coach_request(
    selections: CoachRequestSelections,
) -> CoachRequestCostBreakdownResponse:
    try:
        breakdown = calc_coach_request_tokens(
            selections.level,
            selections.training_type,
            selections.equipment,
            selections.days_per_week,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return CoachRequestCostBreakdownResponse(**breakdown.as_dict())


@router.post(
    "/course",
    response_model=CourseQuoteResponse,
    summary="Quote an AI-generated course",
    description="Margin-applied line items that add up to the total, plus regeneration prices",
)
async def quote_course(options: CourseOptions) -> CourseQuoteResponse:
    try:
        breakdown = options.quote()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return CourseQuoteResponse(
        **breakdown.as_dict(),
        title=generate_course_title(options),
        regeneration={scope.value: cost for scope, cost in REGENERATION_COSTS.items()},
    )


@router.get(
    "/session",
    response_model=SessionQuoteResponse,
    summary="Quote a coach session",
)
async def quote_session(
    duration_hours: int = Query(description="Session length in hours (1, 2 or 3)"),
) -> SessionQuoteResponse:
    try:
        total = get_session_cost(duration_hours)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return SessionQuoteResponse(duration_hours=duration_hours, hourly_rate=HOURLY_RATE, total=total)
