"""Coach request submission and lookup.

Submission quotes the selections, debits the quote and stores the
request in one transaction, then queues ``process_coach_request``.
Everything after that is driven by the orchestrator's arq jobs.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.arq_config import enqueue_job
from app.core.config import settings
from app.core.database import utcnow
from app.core.exceptions import NotFoundError
from app.models.coach_request import CoachRequest, CoachRequestStatus
from app.models.course import Course
from app.schemas.coach_request import CoachRequestCreate
from app.services.coach_service import CoachService
from app.services.pricing import CoachRequestCostBreakdown, calc_coach_request_tokens
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)


def process_job_id(request_id: int) -> str:
    return f"coach-request:{request_id}"


class CoachRequestService:
    """Service for paying for and reading coach requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.token_service = TokenService(db)
        self.coach_service = CoachService(db)

    async def submit(
        self, user_id: int, data: CoachRequestCreate
    ) -> tuple[CoachRequest, CoachRequestCostBreakdown, int]:
        """Pay for a coach request and queue its processing.

        Returns:
            Tuple of (pending request, quote, balance after the debit)

        Raises:
            ValidationError: Invalid selections
            NotFoundError: Unknown or inactive coach
            InsufficientTokensError: Balance below the quote (nothing stored)
        """
        quote = calc_coach_request_tokens(
            data.level, data.training_type, data.equipment, data.days_per_week
        )
        coach = await self.coach_service.get_active_coach(data.coach_id)
        coach_slug = coach.slug
        available_at = utcnow() + timedelta(hours=settings.COACH_REQUEST_DELIVERY_HOURS)

        meta = {
            "reason": "coach_request",
            "coach_id": data.coach_id,
            "coach_slug": coach_slug,
            "goal": data.goal.value,
            "level": data.level.value,
            "training_type": data.training_type.value,
            "equipment": data.equipment.value,
            "days_per_week": data.days_per_week,
            "breakdown": quote.as_dict(),
        }
        async with self.token_service.spend(user_id, quote.total, meta) as transaction:
            request = CoachRequest(
                user_id=user_id,
                coach_id=data.coach_id,
                coach_slug=coach_slug,
                goal=data.goal.value,
                level=data.level.value,
                training_type=data.training_type.value,
                equipment=data.equipment.value,
                days_per_week=data.days_per_week,
                notes=data.notes,
                status=CoachRequestStatus.PENDING,
                tokens_charged=quote.total,
                transaction_id=transaction.id,
                available_at=available_at,
            )
            self.db.add(request)
            await self.db.flush()

        try:
            await enqueue_job("process_coach_request", request.id, _job_id=process_job_id(request.id))
        except Exception:
            logger.warning(f"Coach request {request.id} not queued, left for recovery")

        new_balance = await self.token_service.get_user_balance(user_id)
        logger.info(
            f"Coach request {request.id} submitted by user {user_id} "
            f"for coach {data.coach_id} ({quote.total} tokens)"
        )
        return request, quote, new_balance

    async def list_requests(self, user_id: int) -> list[tuple[CoachRequest, Optional[str]]]:
        """The user's requests, newest first, each with its course PDF URL."""
        stmt = (
            select(CoachRequest, Course.pdf_url)
            .outerjoin(Course, CoachRequest.course_id == Course.id)
            .where(CoachRequest.user_id == user_id)
            .order_by(CoachRequest.created_at.desc(), CoachRequest.id.desc())
        )
        result = await self.db.execute(stmt)
        return [(request, pdf_url) for request, pdf_url in result.all()]

    async def get_request(
        self, user_id: int, request_id: int
    ) -> tuple[CoachRequest, Optional[str]]:
        stmt = (
            select(CoachRequest, Course.pdf_url)
            .outerjoin(Course, CoachRequest.course_id == Course.id)
            .where(CoachRequest.id == request_id, CoachRequest.user_id == user_id)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Coach request", request_id)
        return row[0], row[1]


def get_coach_request_service(db: AsyncSession) -> CoachRequestService:
    return CoachRequestService(db)
