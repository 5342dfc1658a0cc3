"""API routes for AI-generated courses.

This module provides REST endpoints for:
- POST /api/v1/courses - Publish (pay for and generate) a course
- GET /api/v1/courses - List the caller's courses
- GET /api/v1/courses/{course_id} - Get one course
- POST /api/v1/courses/{course_id}/regenerate - Regenerate a day or a week
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db
from app.core.exceptions import ServiceError
from app.models.user import User
from app.schemas.course import (
    CourseOptions,
    CoursePublishResponse,
    CourseResponse,
    RegenerateRequest,
    RegenerateResponse,
)
from app.services.course_service import get_course_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])


@router.post(
    "",
    response_model=CoursePublishResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Publish a course",
    description="Debits the course quote and queues content generation",
)
async def publish_course(
    options: CourseOptions,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CoursePublishResponse:
    user_id = current_user.id
    service = get_course_service(db)
    try:
        course, quote, new_balance = await service.publish(user_id, options)
    except ServiceError as e:
        logger.info(f"Course publish rejected for user {user_id}: {e.code}")
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return CoursePublishResponse(
        course=CourseResponse.model_validate(course),
        tokens_spent=quote.total,
        new_balance=new_balance,
    )


@router.get(
    "",
    response_model=list[CourseResponse],
    summary="List courses",
)
async def list_courses(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[CourseResponse]:
    courses = await get_course_service(db).list_courses(current_user.id)
    return [CourseResponse.model_validate(course) for course in courses]


@router.get(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Get a course",
)
async def get_course(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CourseResponse:
    try:
        course = await get_course_service(db).get_course(current_user.id, course_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return CourseResponse.model_validate(course)


@router.post(
    "/{course_id}/regenerate",
    response_model=RegenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Regenerate a day or a week",
)
async def regenerate_course(
    course_id: int,
    request: RegenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RegenerateResponse:
    """Pay for a regeneration; the new section arrives asynchronously.

    Raises:
        HTTPException(400): Course not ready or week/day outside the plan
        HTTPException(404): Unknown course
        HTTPException(409): ``insufficient_tokens``
    """
    user_id = current_user.id
    service = get_course_service(db)
    try:
        course, cost, new_balance = await service.request_regeneration(
            user_id, course_id, request
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return RegenerateResponse(
        course_id=course.id,
        tokens_spent=cost,
        course_tokens_spent=course.tokens_spent,
        new_balance=new_balance,
    )
