"""Course service for AI-generated training plans.

Publishing debits the course quote and creates a PENDING course in one
transaction; an arq job fills in the content. Regeneration rewrites one
day or one week of a READY course for a fixed price. A generation that
finally fails is refunded through an offsetting ledger credit.
"""

import logging
import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.arq_config import enqueue_job
from app.core.exceptions import NotFoundError, ValidationError
from app.models.course import Course, CourseStatus
from app.schemas.course import CourseOptions, RegenerateRequest
from app.services.content_generator import GeneratedContent
from app.services.pricing import (
    CourseCostBreakdown,
    RegenerationScope,
    generate_course_title,
    get_regeneration_cost,
)
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)

_WEEK_BOUNDARY = re.compile(r"^#{1,2}\s")
_DAY_BOUNDARY = re.compile(r"^#{1,3}\s")


def course_job_id(course_id: int, generation: int) -> str:
    return f"course-generation:{course_id}:{generation}"


def pdf_job_id(course_id: int, generation: int) -> str:
    return f"course-pdf:{course_id}:{generation}"


def _section_bounds(
    lines: list[str], heading: re.Pattern, boundary: re.Pattern, lo: int, hi: int
) -> Optional[tuple[int, int]]:
    for i in range(lo, hi):
        if heading.match(lines[i]):
            for j in range(i + 1, hi):
                if boundary.match(lines[j]):
                    return i, j
            return i, hi
    return None


def replace_section(
    content: str,
    scope: RegenerationScope,
    week: int,
    day: Optional[int],
    section: str,
) -> str:
    """Splice a regenerated week or day into Markdown course content.

    Weeks are ``## Week N`` headings and days ``### Day N`` headings
    inside them. A section that cannot be found is appended (at the end
    of its week for a day, at the end of the content for a week).
    """
    if scope == RegenerationScope.DAY:
        heading = f"### Day {day}"
    else:
        heading = f"## Week {week}"

    section = section.strip("\n")
    if not section.lstrip().startswith("#"):
        section = f"{heading}\n{section}"
    new_lines = section.splitlines()

    lines = content.splitlines()
    week_pattern = re.compile(rf"^##\s+Week\s+{week}\b", re.IGNORECASE)
    week_bounds = _section_bounds(lines, week_pattern, _WEEK_BOUNDARY, 0, len(lines))

    if week_bounds is None:
        if scope == RegenerationScope.DAY:
            new_lines = [f"## Week {week}", ""] + new_lines
        return content.rstrip("\n") + "\n\n" + "\n".join(new_lines) + "\n"

    if scope == RegenerationScope.WEEK:
        start, end = week_bounds
    else:
        day_pattern = re.compile(rf"^###\s+Day\s+{day}\b", re.IGNORECASE)
        day_bounds = _section_bounds(
            lines, day_pattern, _DAY_BOUNDARY, week_bounds[0] + 1, week_bounds[1]
        )
        start, end = day_bounds if day_bounds else (week_bounds[1], week_bounds[1])

    if start == end and start > 0 and lines[start - 1].strip():
        new_lines = [""] + new_lines
    if end < len(lines):
        new_lines = new_lines + [""]

    merged = lines[:start] + new_lines + lines[end:]
    return "\n".join(merged).rstrip("\n") + "\n"


class CourseService:
    """Service for publishing, regenerating and reading courses."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.token_service = TokenService(db)

    async def publish(
        self, user_id: int, options: CourseOptions
    ) -> tuple[Course, CourseCostBreakdown, int]:
        """Pay for a course and queue its generation.

        Returns:
            Tuple of (pending course, quote, balance after the debit)

        Raises:
            ValidationError: No workout types or no target muscles selected
            InsufficientTokensError: Balance below the quote
        """
        if not options.workout_types:
            raise ValidationError("Select at least one workout type")
        if not options.target_muscles:
            raise ValidationError("Select at least one target muscle")

        quote = options.quote()
        title = generate_course_title(options)
        meta = {"reason": "course", "title": title, "breakdown": quote.as_dict()}

        async with self.token_service.spend(user_id, quote.total, meta):
            course = Course(
                user_id=user_id,
                title=title,
                options=options.model_dump(mode="json"),
                status=CourseStatus.PENDING,
                images=[],
                tokens_spent=quote.total,
                generation=1,
            )
            self.db.add(course)
            await self.db.flush()

        await self._enqueue(
            "generate_published_course",
            course.id,
            _job_id=course_job_id(course.id, course.generation),
        )

        new_balance = await self.token_service.get_user_balance(user_id)
        logger.info(f"Course {course.id} published by user {user_id} for {quote.total} tokens")
        return course, quote, new_balance

    async def create_generated_course(
        self,
        user_id: int,
        options: CourseOptions,
        generated: GeneratedContent,
        tokens_spent: int,
    ) -> Course:
        """Add a READY course built from already generated content.

        Flushes but does not commit; the caller owns the transaction.
        """
        course = Course(
            user_id=user_id,
            title=generate_course_title(options),
            options=options.model_dump(mode="json"),
            status=CourseStatus.READY,
            content=generated.content,
            images=list(generated.images),
            nutrition_advice=generated.nutrition_advice,
            tokens_spent=tokens_spent,
            generation=1,
        )
        self.db.add(course)
        await self.db.flush()
        return course

    async def complete_generation(
        self, course_id: int, generated: GeneratedContent
    ) -> Optional[Course]:
        """Store the content of a published course and mark it READY.

        Returns None (and changes nothing) unless the course is still
        waiting for its first content.
        """
        course = await self._lock_course(course_id)
        if course.status != CourseStatus.PENDING or course.content is not None:
            await self.db.commit()
            logger.info(f"Course {course_id} already {course.status.value}, skipping content")
            return None

        course.content = generated.content
        course.images = list(generated.images)
        course.nutrition_advice = generated.nutrition_advice
        course.status = CourseStatus.READY
        course.error = None
        await self.db.commit()

        logger.info(f"Course {course_id} ready ({len(generated.content)} chars)")
        await self.request_pdf(course)
        return course

    async def fail_generation(self, course_id: int, error: str) -> bool:
        """Give up on a published course and refund what it cost.

        The status change and the refund commit together.
        """
        course = await self._lock_course(course_id)
        if course.status != CourseStatus.PENDING or course.content is not None:
            await self.db.commit()
            return False

        course.status = CourseStatus.FAILED
        course.error = error
        await self.token_service.refund(
            user_id=course.user_id,
            amount=course.tokens_spent,
            reason="course_generation_failed",
            meta={"course_id": course.id},
        )
        logger.warning(f"Course {course_id} failed, refunded {course.tokens_spent} tokens: {error}")
        return True

    async def request_regeneration(
        self, user_id: int, course_id: int, request: RegenerateRequest
    ) -> tuple[Course, int, int]:
        """Pay for and queue the regeneration of one day or one week.

        Returns:
            Tuple of (course, cost, balance after the debit)

        Raises:
            NotFoundError: Unknown course or not owned by the user
            ValidationError: Course not READY, or week/day outside the plan
            InsufficientTokensError: Balance below the regeneration price
        """
        cost = get_regeneration_cost(request.scope)
        course = await self.get_course(user_id, course_id)
        self._check_regeneration_target(course, request)

        meta = {
            "reason": "regeneration",
            "course_id": course_id,
            "scope": request.scope.value,
            "week": request.week,
            "day": request.day,
        }
        async with self.token_service.spend(user_id, cost, meta):
            course = await self._lock_course(course_id)
            if course.status != CourseStatus.READY:
                raise ValidationError("Course is not ready for regeneration")
            course.tokens_spent += cost
            course.generation += 1
            course.pdf_url = None
            course.error = None
            course.status = CourseStatus.PENDING

        await self._enqueue(
            "regenerate_course_section",
            course.id,
            course.generation,
            request.scope.value,
            request.week,
            request.day,
            cost,
            _job_id=course_job_id(course.id, course.generation),
        )

        new_balance = await self.token_service.get_user_balance(user_id)
        logger.info(
            f"Course {course_id} regeneration queued: {request.scope.value} "
            f"week {request.week} day {request.day} ({cost} tokens)"
        )
        return course, cost, new_balance

    async def apply_regeneration(
        self,
        course_id: int,
        generation: int,
        scope: RegenerationScope,
        week: int,
        day: Optional[int],
        section: str,
    ) -> Optional[Course]:
        course = await self._lock_course(course_id)
        if course.generation != generation or course.status != CourseStatus.PENDING:
            await self.db.commit()
            logger.info(f"Course {course_id} moved past generation {generation}, dropping section")
            return None

        course.content = replace_section(course.content or "", scope, week, day, section)
        course.status = CourseStatus.READY
        await self.db.commit()

        await self.request_pdf(course)
        return course

    async def abandon_regeneration(
        self, course_id: int, generation: int, cost: int, error: str
    ) -> bool:
        """Refund a failed regeneration and restore the previous content."""
        course = await self._lock_course(course_id)
        if course.generation != generation or course.status != CourseStatus.PENDING:
            await self.db.commit()
            return False

        course.status = CourseStatus.READY
        course.error = f"Regeneration failed: {error}"
        await self.token_service.refund(
            user_id=course.user_id,
            amount=cost,
            reason="regeneration_failed",
            meta={"course_id": course.id, "generation": generation},
        )
        logger.warning(f"Regeneration of course {course_id} failed, refunded {cost} tokens")

        await self.request_pdf(course)
        return True

    async def request_pdf(self, course: Course) -> None:
        """Queue the PDF for the course's current generation."""
        await self._enqueue(
            "generate_course_pdf",
            course.id,
            course.generation,
            _job_id=pdf_job_id(course.id, course.generation),
        )

    async def set_pdf_url(self, course_id: int, generation: int, url: str) -> bool:
        """Attach a rendered PDF unless the course has moved on or has one."""
        course = await self._lock_course(course_id)
        if course.generation != generation or course.pdf_url is not None:
            await self.db.commit()
            logger.info(f"Ignoring PDF for course {course_id} generation {generation}")
            return False

        course.pdf_url = url
        await self.db.commit()
        return True

    async def list_courses(self, user_id: int) -> list[Course]:
        stmt = (
            select(Course)
            .where(Course.user_id == user_id)
            .order_by(Course.created_at.desc(), Course.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_course(self, user_id: int, course_id: int) -> Course:
        stmt = select(Course).where(Course.id == course_id, Course.user_id == user_id)
        course = (await self.db.execute(stmt)).scalar_one_or_none()
        if course is None:
            raise NotFoundError("Course", course_id)
        return course

    async def get_by_id(self, course_id: int) -> Course:
        course = await self.db.get(Course, course_id)
        if course is None:
            raise NotFoundError("Course", course_id)
        return course

    def _check_regeneration_target(self, course: Course, request: RegenerateRequest) -> None:
        if course.status != CourseStatus.READY:
            raise ValidationError("Course is not ready for regeneration")
        options = CourseOptions(**course.options)
        if request.week > options.weeks:
            raise ValidationError(f"Course has only {options.weeks} weeks")
        if request.day is not None and request.day > options.sessions_per_week:
            raise ValidationError(
                f"Course has only {options.sessions_per_week} sessions per week"
            )

    async def _lock_course(self, course_id: int) -> Course:
        stmt = (
            select(Course)
            .where(Course.id == course_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        course = (await self.db.execute(stmt)).scalar_one_or_none()
        if course is None:
            raise NotFoundError("Course", course_id)
        return course

    async def _enqueue(self, function_name: str, *args, **kwargs) -> None:
        try:
            await enqueue_job(function_name, *args, **kwargs)
        except Exception:
            logger.warning(f"{function_name}{args} not queued, left for recovery")


def get_course_service(db: AsyncSession) -> CourseService:
    return CourseService(db)
