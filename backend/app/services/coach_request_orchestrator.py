"""Background processing of coach requests.

Each step is called from an arq job and checks the request's current
state before acting, so a job that runs twice (retry, recovery cron,
worker restart) never double-links, double-releases or double-refunds.

Lifecycle:
    start             PENDING -> PROCESSING
    generate_and_link content generated, Course created and linked once
    request_pdf       PDF rendered on the side (failures never fatal)
    schedule_release  deferred arq job at ``available_at``
    release           PROCESSING -> DONE, notification queued
    mark_failed       -> FAILED with an offsetting refund
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.arq_config import enqueue_job
from app.core.database import as_utc, utcnow
from app.core.exceptions import NotFoundError
from app.models.coach_request import CoachRequest, CoachRequestStatus
from app.models.course import Course
from app.models.user import User
from app.schemas.course import CourseOptions
from app.services.content_generator import (
    CourseContentGenerator,
    GeneratedContent,
    get_content_generator,
)
from app.services.course_service import CourseService
from app.services.email_service import EmailService
from app.services.pricing import Equipment, Goal, PdfMode, TrainingType, require_complete
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)

COACH_COURSE_WEEKS = 4
COACH_COURSE_IMAGES = 6

WORKOUT_TYPES_BY_TRAINING = require_complete(
    {
        TrainingType.HOME: [
            "Home Minimal Equipment",
            "Calisthenics (Bodyweight)",
            "Resistance Bands / Mini-bands",
        ],
        TrainingType.GYM: [
            "Full-Body Strength",
            "Upper/Lower Split",
            "Push / Pull / Legs (PPL)",
        ],
        TrainingType.MIXED: [
            "Home Minimal Equipment",
            "Full-Body Strength",
            "Upper/Lower Split",
        ],
    },
    TrainingType,
)

TARGET_MUSCLES_BY_GOAL = require_complete(
    {
        Goal.STRENGTH: ["full_body"],
        Goal.FAT_LOSS: ["full_body", "core"],
        Goal.MOBILITY: ["shoulders", "hips", "back"],
        Goal.ENDURANCE: ["legs", "cardio"],
        Goal.POSTURE: ["upper_back", "core"],
    },
    Goal,
)


def release_job_id(request_id: int) -> str:
    return f"coach-request-release:{request_id}"


def notify_job_id(request_id: int) -> str:
    return f"coach-request-notify:{request_id}"


def build_course_options(request: CoachRequest) -> CourseOptions:
    """Course options a coach request is written against."""
    return CourseOptions(
        weeks=COACH_COURSE_WEEKS,
        sessions_per_week=request.days_per_week,
        injury_safe=True,
        special_equipment=Equipment(request.equipment) == Equipment.FULL_GYM,
        nutrition_tips=False,
        pdf=PdfMode.TEXT,
        images=COACH_COURSE_IMAGES,
        workout_types=WORKOUT_TYPES_BY_TRAINING[TrainingType(request.training_type)],
        target_muscles=TARGET_MUSCLES_BY_GOAL[Goal(request.goal)],
        notes=request.notes,
    )


@dataclass(frozen=True)
class ReleaseOutcome:
    """What ``release`` did: ``released``, ``not_due`` or ``skipped``."""

    status: str
    remaining_seconds: float = 0.0


class CoachRequestOrchestrator:
    """Drives a paid coach request from PENDING to DONE (or FAILED)."""

    def __init__(
        self,
        db: AsyncSession,
        generator: Optional[CourseContentGenerator] = None,
    ):
        self.db = db
        self.generator = generator
        self.token_service = TokenService(db)
        self.course_service = CourseService(db)

    async def start(self, request_id: int) -> Optional[CoachRequest]:
        """Claim the request for processing.

        Returns:
            The request, or None if it is already DONE or FAILED
        """
        request = await self._lock_request(request_id)
        if request.is_terminal:
            await self.db.commit()
            logger.info(f"Coach request {request_id} is {request.status.value}, nothing to do")
            return None

        if request.status == CoachRequestStatus.PENDING:
            request.transition_to(CoachRequestStatus.PROCESSING)
            logger.info(f"Coach request {request_id} processing")
        await self.db.commit()
        return request

    async def generate_and_link(self, request_id: int) -> Optional[int]:
        """Generate the plan and link it; returns the linked course id.

        A request that already has a course is returned as is.

        Raises:
            ContentGenerationError: The provider failed (the job retries)
        """
        request = await self._get_request(request_id)
        if request.course_id is not None:
            return request.course_id

        options = build_course_options(request)
        notes = request.notes
        # No transaction stays open while the provider works
        await self.db.commit()

        generator = self.generator or get_content_generator()
        generated = await generator.generate_course(options, notes=notes)
        return await self.link_course(request_id, options, generated)

    async def link_course(
        self, request_id: int, options: CourseOptions, generated: GeneratedContent
    ) -> Optional[int]:
        """Create the Course and set ``course_id`` in one transaction.

        Idempotent: an already linked request keeps its course and
        nothing new is created. A failed request gets no course.
        """
        request = await self._lock_request(request_id)
        if request.course_id is not None:
            course_id = request.course_id
            await self.db.commit()
            logger.info(f"Coach request {request_id} already linked to course {course_id}")
            return course_id
        if request.status != CoachRequestStatus.PROCESSING:
            status = request.status.value
            await self.db.commit()
            logger.warning(f"Coach request {request_id} is {status}, not linking a course")
            return None

        course = await self.course_service.create_generated_course(
            user_id=request.user_id,
            options=options,
            generated=generated,
            tokens_spent=request.tokens_charged,
        )
        request.course_id = course.id
        course_id = course.id
        await self.db.commit()

        logger.info(f"Coach request {request_id} linked to course {course_id}")
        return course_id

    async def request_pdf(self, course_id: int) -> None:
        course = await self.course_service.get_by_id(course_id)
        await self.course_service.request_pdf(course)

    async def schedule_release(self, request_id: int) -> None:
        """Queue the release job for ``available_at`` (durable in Redis)."""
        request = await self._get_request(request_id)
        available_at = as_utc(request.available_at)
        try:
            await enqueue_job(
                "release_coach_request",
                request_id,
                _job_id=release_job_id(request_id),
                _defer_until=available_at,
            )
        except Exception:
            logger.warning(f"Release of coach request {request_id} not queued, left for recovery")
            return
        logger.info(f"Coach request {request_id} release scheduled for {available_at.isoformat()}")

    async def release(self, request_id: int, now: Optional[datetime] = None) -> ReleaseOutcome:
        """Make a linked request visible once ``available_at`` has passed."""
        now = now or utcnow()
        request = await self._lock_request(request_id)

        if request.status != CoachRequestStatus.PROCESSING or request.course_id is None:
            status = request.status.value
            await self.db.commit()
            logger.info(f"Coach request {request_id} is {status}, release skipped")
            return ReleaseOutcome("skipped")

        available_at = as_utc(request.available_at)
        if now < available_at:
            await self.db.commit()
            return ReleaseOutcome("not_due", (available_at - now).total_seconds())

        request.transition_to(CoachRequestStatus.DONE)
        await self.db.commit()
        logger.info(f"Coach request {request_id} released")

        try:
            await enqueue_job(
                "notify_coach_request_ready", request_id, _job_id=notify_job_id(request_id)
            )
        except Exception:
            logger.warning(f"Notification for coach request {request_id} not queued")
        return ReleaseOutcome("released")

    async def mark_failed(self, request_id: int, error: str) -> bool:
        """Fail the request and refund it; both commit together.

        Returns:
            False if the request was already DONE or FAILED
        """
        request = await self._lock_request(request_id)
        if request.is_terminal:
            await self.db.commit()
            return False

        request.error = error
        request.transition_to(CoachRequestStatus.FAILED)
        await self.token_service.refund(
            user_id=request.user_id,
            amount=request.tokens_charged,
            reason="coach_request_failed",
            meta={"coach_request_id": request_id, "transaction_id": request.transaction_id},
        )
        logger.warning(
            f"Coach request {request_id} failed, refunded {request.tokens_charged} tokens: {error}"
        )
        return True

    async def notify_ready(self, request_id: int) -> bool:
        """Email the customer once the request is DONE and its PDF exists."""
        stmt = (
            select(CoachRequest, Course, User)
            .join(Course, CoachRequest.course_id == Course.id)
            .join(User, CoachRequest.user_id == User.id)
            .where(CoachRequest.id == request_id)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            logger.info(f"Coach request {request_id} has no course, notification skipped")
            return False

        request, course, user = row
        if request.status != CoachRequestStatus.DONE:
            logger.info(f"Coach request {request_id} not released, notification skipped")
            return False
        if not course.pdf_url:
            logger.info(f"Course {course.id} has no PDF yet, notification skipped")
            return False

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, EmailService.send_course_ready_email, user, course, request
        )

    async def _get_request(self, request_id: int) -> CoachRequest:
        request = await self.db.get(CoachRequest, request_id)
        if request is None:
            raise NotFoundError("Coach request", request_id)
        return request

    async def _lock_request(self, request_id: int) -> CoachRequest:
        stmt = (
            select(CoachRequest)
            .where(CoachRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = (await self.db.execute(stmt)).scalar_one_or_none()
        if request is None:
            raise NotFoundError("Coach request", request_id)
        return request
