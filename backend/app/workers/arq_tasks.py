"""ARQ worker tasks for course generation and coach request delivery.

This module defines the async task functions that are executed by ARQ workers.
Tasks include:
- process_coach_request: Generate and link the plan of a paid coach request
- release_coach_request: Deferred job that releases a request at available_at
- notify_coach_request_ready: Email the customer about a released plan
- generate_published_course: Fill in the content of a published course
- regenerate_course_section: Rewrite one day or week of a course
- generate_course_pdf: Render and attach the PDF of a course generation
- recover_stalled_work: Maintenance task re-queueing work lost by crashes

Every task opens its own session and calls services whose steps check
state first, so re-running a task is harmless.

Usage:
    Start worker with: arq app.workers.arq_tasks.WorkerSettings
"""

import logging
from datetime import timedelta

from arq import Retry, cron, func
from sqlalchemy import select

from app.core.arq_config import (
    DEFAULT_RETRY_CONFIG,
    GENERATION_RETRY_CONFIG,
    QUEUE_NAME,
    enqueue_job,
    get_redis_settings,
    set_arq_pool,
)
from app.core.config import settings
from app.core.database import close_db, get_session_factory, utcnow
from app.core.exceptions import NotFoundError
from app.core.logging_config import setup_logging
from app.models.coach_request import CoachRequest, CoachRequestStatus
from app.models.course import Course, CourseStatus
from app.schemas.course import CourseOptions
from app.services.coach_request_orchestrator import CoachRequestOrchestrator, release_job_id
from app.services.coach_request_service import process_job_id
from app.services.content_generator import ContentGenerationError, get_content_generator
from app.services.course_service import CourseService, course_job_id
from app.services.pdf_service import PdfService
from app.services.pricing import RegenerationScope
from app.services.r2_storage import R2StorageError

logger = logging.getLogger(__name__)

# Early wake-ups a deferred release may take before the recovery cron steps in
RELEASE_MAX_TRIES = 20


def _generator(ctx: dict):
    return ctx.get("content_generator") or get_content_generator()


def _retry_or_give_up(ctx: dict, what: str, error: Exception) -> None:
    """Raise arq's Retry with backoff while generation attempts remain."""
    job_try = ctx.get("job_try", 1)
    if job_try < GENERATION_RETRY_CONFIG.max_tries:
        delay = GENERATION_RETRY_CONFIG.get_delay(job_try - 1)
        logger.warning(f"{what} attempt {job_try} failed, retrying in {delay}s: {error}")
        raise Retry(defer=delay)
    logger.error(f"{what} failed after {job_try} attempts: {error}")


# ============================================================================
# Coach requests
# ============================================================================


async def process_coach_request(ctx: dict, request_id: int) -> dict:
    """Generate the plan for a paid coach request and schedule its release.

    Args:
        ctx: ARQ context
        request_id: CoachRequest ID

    Returns:
        Dict with the processing result
    """
    logger.info(f"Processing coach request {request_id} (try {ctx.get('job_try', 1)})")
    session_factory = get_session_factory()

    async with session_factory() as db:
        orchestrator = CoachRequestOrchestrator(db, generator=_generator(ctx))

        try:
            request = await orchestrator.start(request_id)
        except NotFoundError:
            logger.warning(f"Coach request {request_id} no longer exists")
            return {"status": "skipped", "request_id": request_id}
        if request is None:
            return {"status": "skipped", "request_id": request_id}

        try:
            course_id = await orchestrator.generate_and_link(request_id)
        except ContentGenerationError as e:
            await db.rollback()
            _retry_or_give_up(ctx, f"Coach request {request_id}", e)
            await orchestrator.mark_failed(request_id, f"Generation failed: {e}")
            return {"status": "failed", "request_id": request_id, "error": str(e)}

        if course_id is None:
            return {"status": "skipped", "request_id": request_id}

        await orchestrator.request_pdf(course_id)
        await orchestrator.schedule_release(request_id)

    return {"status": "linked", "request_id": request_id, "course_id": course_id}


async def release_coach_request(ctx: dict, request_id: int) -> dict:
    """Release a linked request once its delivery time has passed.

    A job that wakes up early defers itself again for the remaining time.
    """
    session_factory = get_session_factory()

    async with session_factory() as db:
        outcome = await CoachRequestOrchestrator(db).release(request_id)

    if outcome.status == "not_due":
        logger.info(
            f"Coach request {request_id} not due for {outcome.remaining_seconds:.0f}s, deferring"
        )
        raise Retry(defer=timedelta(seconds=outcome.remaining_seconds))

    return {"status": outcome.status, "request_id": request_id}


async def notify_coach_request_ready(ctx: dict, request_id: int) -> dict:
    session_factory = get_session_factory()

    async with session_factory() as db:
        sent = await CoachRequestOrchestrator(db).notify_ready(request_id)

    return {"status": "sent" if sent else "skipped", "request_id": request_id}


# ============================================================================
# Courses
# ============================================================================


async def generate_published_course(ctx: dict, course_id: int) -> dict:
    """Generate the content of a course paid for through publish."""
    session_factory = get_session_factory()

    async with session_factory() as db:
        service = CourseService(db)
        try:
            course = await service.get_by_id(course_id)
        except NotFoundError:
            logger.warning(f"Course {course_id} no longer exists")
            return {"status": "skipped", "course_id": course_id}

        if course.status != CourseStatus.PENDING or course.content is not None:
            return {"status": "skipped", "course_id": course_id}

        options = CourseOptions(**course.options)
        await db.commit()

        try:
            generated = await _generator(ctx).generate_course(options)
        except ContentGenerationError as e:
            _retry_or_give_up(ctx, f"Course {course_id}", e)
            await service.fail_generation(course_id, f"Generation failed: {e}")
            return {"status": "failed", "course_id": course_id, "error": str(e)}

        await service.complete_generation(course_id, generated)

    return {"status": "ready", "course_id": course_id}


async def regenerate_course_section(
    ctx: dict,
    course_id: int,
    generation: int,
    scope: str,
    week: int,
    day: int | None,
    cost: int,
) -> dict:
    """Rewrite one day or one week of a course for the given generation."""
    scope = RegenerationScope(scope)
    session_factory = get_session_factory()

    async with session_factory() as db:
        service = CourseService(db)
        course = await service.get_by_id(course_id)
        if course.generation != generation or course.status != CourseStatus.PENDING:
            return {"status": "skipped", "course_id": course_id}

        options = CourseOptions(**course.options)
        content = course.content or ""
        await db.commit()

        try:
            section = await _generator(ctx).regenerate_section(content, options, scope, week, day)
        except ContentGenerationError as e:
            _retry_or_give_up(ctx, f"Regeneration of course {course_id}", e)
            await service.abandon_regeneration(course_id, generation, cost, str(e))
            return {"status": "failed", "course_id": course_id, "error": str(e)}

        await service.apply_regeneration(course_id, generation, scope, week, day, section)

    return {"status": "ready", "course_id": course_id, "generation": generation}


async def generate_course_pdf(ctx: dict, course_id: int, generation: int) -> dict:
    """Render the PDF of one course generation and attach it.

    PDF failures never fail the course; the customer can still read the
    content online.
    """
    pdf_service = ctx.get("pdf_service") or PdfService()
    session_factory = get_session_factory()

    async with session_factory() as db:
        service = CourseService(db)
        course = await service.get_by_id(course_id)
        if (
            course.generation != generation
            or course.status != CourseStatus.READY
            or course.pdf_url is not None
        ):
            return {"status": "skipped", "course_id": course_id}

        try:
            url = await pdf_service.generate_and_upload(course)
        except R2StorageError as e:
            job_try = ctx.get("job_try", 1)
            if job_try < DEFAULT_RETRY_CONFIG.max_tries:
                raise Retry(defer=DEFAULT_RETRY_CONFIG.get_delay(job_try - 1))
            logger.error(f"PDF for course {course_id} gave up: {e}")
            return {"status": "failed", "course_id": course_id, "error": str(e)}

        if url is None:
            return {"status": "skipped", "course_id": course_id}
        if not await service.set_pdf_url(course_id, generation, url):
            return {"status": "stale", "course_id": course_id}

        # A plan released before its PDF existed is announced now
        stmt = select(CoachRequest.id).where(
            CoachRequest.course_id == course_id,
            CoachRequest.status == CoachRequestStatus.DONE,
        )
        released_request_id = await db.scalar(stmt)
        if released_request_id is not None:
            await CoachRequestOrchestrator(db).notify_ready(released_request_id)

    return {"status": "attached", "course_id": course_id, "pdf_url": url}


# ============================================================================
# Maintenance
# ============================================================================


async def recover_stalled_work(ctx: dict) -> dict:
    """Re-queue work whose job was lost and fail requests stuck mid-generation.

    - PENDING coach requests older than the grace period: process again
    - PROCESSING requests without a course for twice the grace period: fail and refund
    - PROCESSING requests with a course past available_at: release again
    - PENDING courses that never received content: generate again
    """
    now = utcnow()
    grace = timedelta(minutes=settings.STALLED_REQUEST_GRACE_MINUTES)
    counts = {"requeued": 0, "released": 0, "failed": 0, "courses": 0}
    session_factory = get_session_factory()

    async with session_factory() as db:
        pending = await db.scalars(
            select(CoachRequest.id).where(
                CoachRequest.status == CoachRequestStatus.PENDING,
                CoachRequest.created_at < now - grace,
            )
        )
        for request_id in pending.all():
            await enqueue_job("process_coach_request", request_id, _job_id=process_job_id(request_id))
            counts["requeued"] += 1

        stuck = await db.scalars(
            select(CoachRequest.id).where(
                CoachRequest.status == CoachRequestStatus.PROCESSING,
                CoachRequest.course_id.is_(None),
                CoachRequest.updated_at < now - 2 * grace,
            )
        )
        orchestrator = CoachRequestOrchestrator(db)
        for request_id in stuck.all():
            if await orchestrator.mark_failed(request_id, "Generation stalled"):
                counts["failed"] += 1

        due = await db.scalars(
            select(CoachRequest.id).where(
                CoachRequest.status == CoachRequestStatus.PROCESSING,
                CoachRequest.course_id.is_not(None),
                CoachRequest.available_at <= now,
            )
        )
        for request_id in due.all():
            await enqueue_job("release_coach_request", request_id, _job_id=release_job_id(request_id))
            counts["released"] += 1

        # TODO: recover stalled regenerations once the pending scope/week/day is stored on the course
        courses = await db.execute(
            select(Course.id, Course.generation).where(
                Course.status == CourseStatus.PENDING,
                Course.content.is_(None),
                Course.created_at < now - grace,
            )
        )
        for course_id, generation in courses.all():
            await enqueue_job(
                "generate_published_course", course_id, _job_id=course_job_id(course_id, generation)
            )
            counts["courses"] += 1

        await db.commit()

    logger.info(f"Recovery completed: {counts}")
    return {"status": "completed", **counts}


# Worker settings for ARQ
class WorkerSettings:
    """ARQ Worker configuration.

    Usage: arq app.workers.arq_tasks.WorkerSettings
    """

    redis_settings = get_redis_settings()
    queue_name = QUEUE_NAME

    # Worker behavior
    max_jobs = 10
    job_timeout = 600  # 10 minutes
    poll_delay = 0.5

    # Health check
    health_check_interval = 30

    # Registered task functions
    functions = [
        func(process_coach_request, max_tries=GENERATION_RETRY_CONFIG.max_tries),
        func(generate_published_course, max_tries=GENERATION_RETRY_CONFIG.max_tries),
        func(regenerate_course_section, max_tries=GENERATION_RETRY_CONFIG.max_tries),
        func(generate_course_pdf, max_tries=DEFAULT_RETRY_CONFIG.max_tries),
        func(release_coach_request, max_tries=RELEASE_MAX_TRIES),
        notify_coach_request_ready,
        recover_stalled_work,
    ]

    # Cron jobs for maintenance (run recovery every 15 minutes)
    cron_jobs = [
        cron(recover_stalled_work, minute={0, 15, 30, 45}),
    ]

    # Startup hook
    @staticmethod
    async def on_startup(ctx: dict) -> None:
        """Called when worker starts."""
        setup_logging()
        logger.info("ARQ Worker starting up...")
        # Tasks enqueue follow-up jobs through the worker's own pool
        set_arq_pool(ctx["redis"])
        ctx["content_generator"] = get_content_generator()
        ctx["pdf_service"] = PdfService()
        logger.info("ARQ Worker ready to process jobs")

    # Shutdown hook
    @staticmethod
    async def on_shutdown(ctx: dict) -> None:
        """Called when worker shuts down."""
        logger.info("ARQ Worker shutting down...")
        set_arq_pool(None)
        await close_db()
        logger.info("ARQ Worker shutdown complete")
