"""API routes for coach requests.

This module provides REST endpoints for:
- POST /api/v1/coach-requests - Pay for a coach-authored plan
- GET /api/v1/coach-requests - List the caller's requests
- GET /api/v1/coach-requests/{request_id} - Poll one request
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db
from app.core.exceptions import ServiceError
from app.models.user import User
from app.schemas.coach_request import (
    CoachRequestCreate,
    CoachRequestResponse,
    CoachRequestSubmitResponse,
)
from app.services.coach_request_service import get_coach_request_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coach-requests", tags=["coach-requests"])


@router.post(
    "",
    response_model=CoachRequestSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a coach request",
    description="Debits the quote and queues generation; the plan is released after the delivery delay",
)
async def submit_coach_request(
    request: CoachRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CoachRequestSubmitResponse:
    """Submit a coach request for the current user.

    Raises:
        HTTPException(404): Unknown coach
        HTTPException(409): ``insufficient_tokens``; nothing is stored
    """
    user_id = current_user.id
    service = get_coach_request_service(db)
    try:
        coach_request, _, new_balance = await service.submit(user_id, request)
    except ServiceError as e:
        logger.info(f"Coach request rejected for user {user_id}: {e.code}")
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return CoachRequestSubmitResponse(
        request=CoachRequestResponse.from_request(coach_request),
        new_balance=new_balance,
    )


@router.get(
    "",
    response_model=list[CoachRequestResponse],
    summary="List coach requests",
)
async def list_coach_requests(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[CoachRequestResponse]:
    rows = await get_coach_request_service(db).list_requests(current_user.id)
    return [CoachRequestResponse.from_request(req, pdf_url) for req, pdf_url in rows]


@router.get(
    "/{request_id}",
    response_model=CoachRequestResponse,
    summary="Get a coach request",
)
async def get_coach_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CoachRequestResponse:
    try:
        coach_request, pdf_url = await get_coach_request_service(db).get_request(
            current_user.id, request_id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return CoachRequestResponse.from_request(coach_request, pdf_url)
