"""Tests for course publishing, regeneration and section splicing."""

import pytest
import pytest_asyncio
from fastapi import status
from sqlalchemy import func, select

from app.core.exceptions import InsufficientTokensError, NotFoundError, ValidationError
from app.models.course import Course, CourseStatus
from app.schemas.course import CourseOptions, RegenerateRequest
from app.services.content_generator import GeneratedContent
from app.services.course_service import CourseService, replace_section
from app.services.pricing import RegenerationScope
from app.services.token_service import TokenService

from conftest import SAMPLE_PLAN, enqueued


def plan_options(**overrides) -> CourseOptions:
    values = dict(
        weeks=2,
        sessions_per_week=2,
        workout_types=["Full-Body Strength"],
        target_muscles=["legs", "chest"],
    )
    values.update(overrides)
    return CourseOptions(**values)


async def _course_count(db_session) -> int:
    return await db_session.scalar(select(func.count()).select_from(Course))


@pytest_asyncio.fixture
async def ready_course(db_session, funded_user):
    """A published course whose content has been generated."""
    service = CourseService(db_session)
    course, _, _ = await service.publish(funded_user.id, plan_options())
    await service.complete_generation(course.id, GeneratedContent(content=SAMPLE_PLAN))
    await db_session.refresh(course)
    return course


# ============================================================================
# Section splicing
# ============================================================================


class TestReplaceSection:
    def test_replace_day_within_its_week(self):
        result = replace_section(SAMPLE_PLAN, RegenerationScope.DAY, 1, 2, "### Day 2\n- Dips 3x8")

        assert "Push-up 3x12" not in result
        assert "### Day 2\n- Dips 3x8\n\n## Week 2" in result
        assert "Incline push-up 3x10" in result
        assert "Goblet squat 3x10" in result

    def test_replace_week(self):
        result = replace_section(
            SAMPLE_PLAN, RegenerationScope.WEEK, 1, None, "## Week 1\n\n### Day 1\n- Lunges 3x10"
        )

        assert "Goblet squat" not in result
        assert "Push-up 3x12" not in result
        assert "## Week 1\n\n### Day 1\n- Lunges 3x10\n\n## Week 2" in result
        assert result.startswith("# Overview")
        assert "Split squat" in result

    def test_missing_day_appended_to_its_week(self):
        result = replace_section(SAMPLE_PLAN, RegenerationScope.DAY, 1, 3, "### Day 3\n- Rows 3x10")

        assert "rest 60s\n\n### Day 3\n- Rows 3x10\n\n## Week 2" in result

    def test_missing_week_appended_at_end(self):
        result = replace_section(
            SAMPLE_PLAN, RegenerationScope.WEEK, 3, None, "## Week 3\n### Day 1\n- Sprints"
        )

        assert result.endswith("rest 60s\n\n## Week 3\n### Day 1\n- Sprints\n")

    def test_day_of_missing_week_gets_week_heading(self):
        result = replace_section(SAMPLE_PLAN, RegenerationScope.DAY, 3, 1, "### Day 1\n- Sprints")

        assert result.endswith("## Week 3\n\n### Day 1\n- Sprints\n")

    def test_section_without_heading(self):
        result = replace_section(SAMPLE_PLAN, RegenerationScope.DAY, 2, 1, "- Box jumps 3x5")

        assert "Split squat" not in result
        assert "## Week 2\n\n### Day 1\n- Box jumps 3x5\n\n### Day 2" in result


# ============================================================================
# Publishing and first generation
# ============================================================================


@pytest.mark.asyncio
async def test_publish_debits_quote_and_queues_generation(db_session, funded_user, arq_pool):
    options = plan_options()

    course, quote, balance = await CourseService(db_session).publish(funded_user.id, options)

    assert quote.total == options.quote().total
    assert course.status == CourseStatus.PENDING
    assert course.content is None
    assert course.tokens_spent == quote.total
    assert course.generation == 1
    assert course.title.startswith("2-Week Fitness Program (2 sessions/week)")
    assert balance == 15_000 - quote.total

    calls = enqueued(arq_pool, "generate_published_course")
    assert len(calls) == 1
    assert calls[0].args[1] == course.id
    assert calls[0].kwargs["_job_id"] == f"course-generation:{course.id}:1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [{"workout_types": []}, {"target_muscles": []}],
)
async def test_publish_requires_selections(db_session, funded_user, overrides):
    with pytest.raises(ValidationError):
        await CourseService(db_session).publish(funded_user.id, plan_options(**overrides))

    assert await TokenService(db_session).get_user_balance(funded_user.id) == 15_000


@pytest.mark.asyncio
async def test_publish_without_tokens_creates_nothing(db_session, test_user, arq_pool):
    with pytest.raises(InsufficientTokensError):
        await CourseService(db_session).publish(test_user.id, plan_options())

    assert await _course_count(db_session) == 0
    assert enqueued(arq_pool, "generate_published_course") == []


@pytest.mark.asyncio
async def test_complete_generation_once(db_session, funded_user, arq_pool):
    service = CourseService(db_session)
    course, _, _ = await service.publish(funded_user.id, plan_options(nutrition_tips=True))
    generated = GeneratedContent(content=SAMPLE_PLAN, nutrition_advice="Eat protein.")

    completed = await service.complete_generation(course.id, generated)
    again = await service.complete_generation(course.id, GeneratedContent(content="other"))

    assert completed.status == CourseStatus.READY
    assert completed.content == SAMPLE_PLAN
    assert completed.nutrition_advice == "Eat protein."
    assert again is None
    pdf_calls = enqueued(arq_pool, "generate_course_pdf")
    assert [c.kwargs["_job_id"] for c in pdf_calls] == [f"course-pdf:{course.id}:1"]


@pytest.mark.asyncio
async def test_fail_generation_refunds_once(db_session, funded_user):
    service = CourseService(db_session)
    course, _, _ = await service.publish(funded_user.id, plan_options())

    assert await service.fail_generation(course.id, "provider down")
    assert not await service.fail_generation(course.id, "provider down")

    await db_session.refresh(course)
    assert course.status == CourseStatus.FAILED
    assert course.error == "provider down"
    assert await TokenService(db_session).get_user_balance(funded_user.id) == 15_000


# ============================================================================
# Regeneration
# ============================================================================


@pytest.mark.asyncio
async def test_request_day_regeneration(db_session, funded_user, ready_course, arq_pool):
    service = CourseService(db_session)
    before = await TokenService(db_session).get_user_balance(funded_user.id)
    spent_before = ready_course.tokens_spent

    course, cost, balance = await service.request_regeneration(
        funded_user.id, ready_course.id, RegenerateRequest(scope="day", week=1, day=2)
    )

    assert cost == 30
    assert balance == before - 30
    assert course.tokens_spent == spent_before + 30
    assert course.generation == 2
    assert course.status == CourseStatus.PENDING
    assert course.pdf_url is None

    calls = enqueued(arq_pool, "regenerate_course_section")
    assert calls[0].args[1:] == (course.id, 2, "day", 1, 2, 30)
    assert calls[0].kwargs["_job_id"] == f"course-generation:{course.id}:2"


@pytest.mark.asyncio
async def test_week_regeneration_costs_more(db_session, funded_user, ready_course):
    _, cost, _ = await CourseService(db_session).request_regeneration(
        funded_user.id, ready_course.id, RegenerateRequest(scope="week", week=2)
    )

    assert cost == 120


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "request_data",
    [
        {"scope": "week", "week": 3},
        {"scope": "day", "week": 1, "day": 3},
    ],
)
async def test_regeneration_outside_plan_rejected(db_session, funded_user, ready_course, request_data):
    with pytest.raises(ValidationError):
        await CourseService(db_session).request_regeneration(
            funded_user.id, ready_course.id, RegenerateRequest(**request_data)
        )


@pytest.mark.asyncio
async def test_regeneration_requires_ready_course(db_session, funded_user):
    service = CourseService(db_session)
    course, _, _ = await service.publish(funded_user.id, plan_options())

    with pytest.raises(ValidationError):
        await service.request_regeneration(
            funded_user.id, course.id, RegenerateRequest(scope="week", week=1)
        )


@pytest.mark.asyncio
async def test_regeneration_of_foreign_course(db_session, other_user, ready_course):
    await TokenService(db_session).record_topup(other_user.id, 1_000)

    with pytest.raises(NotFoundError):
        await CourseService(db_session).request_regeneration(
            other_user.id, ready_course.id, RegenerateRequest(scope="week", week=1)
        )


@pytest.mark.asyncio
async def test_apply_regeneration(db_session, funded_user, ready_course, arq_pool):
    service = CourseService(db_session)
    await service.request_regeneration(
        funded_user.id, ready_course.id, RegenerateRequest(scope="day", week=2, day=1)
    )

    course = await service.apply_regeneration(
        ready_course.id, 2, RegenerationScope.DAY, 2, 1, "### Day 1\n- Box jumps 3x5"
    )

    assert course.status == CourseStatus.READY
    assert "Box jumps 3x5" in course.content
    assert "Split squat" not in course.content
    pdf_jobs = [c.kwargs["_job_id"] for c in enqueued(arq_pool, "generate_course_pdf")]
    assert f"course-pdf:{ready_course.id}:2" in pdf_jobs


@pytest.mark.asyncio
async def test_stale_regeneration_is_dropped(db_session, funded_user, ready_course):
    service = CourseService(db_session)
    await service.request_regeneration(
        funded_user.id, ready_course.id, RegenerateRequest(scope="week", week=1)
    )

    assert await service.apply_regeneration(
        ready_course.id, 1, RegenerationScope.WEEK, 1, None, "## Week 1\n- old"
    ) is None

    await db_session.refresh(ready_course)
    assert ready_course.content == SAMPLE_PLAN
    assert ready_course.status == CourseStatus.PENDING


@pytest.mark.asyncio
async def test_abandon_regeneration_refunds(db_session, funded_user, ready_course):
    service = CourseService(db_session)
    tokens = TokenService(db_session)
    before = await tokens.get_user_balance(funded_user.id)
    await service.request_regeneration(
        funded_user.id, ready_course.id, RegenerateRequest(scope="week", week=1)
    )

    assert await service.abandon_regeneration(ready_course.id, 2, 120, "provider down")
    assert not await service.abandon_regeneration(ready_course.id, 2, 120, "provider down")

    await db_session.refresh(ready_course)
    assert ready_course.status == CourseStatus.READY
    assert ready_course.content == SAMPLE_PLAN
    assert ready_course.error == "Regeneration failed: provider down"
    assert await tokens.get_user_balance(funded_user.id) == before


@pytest.mark.asyncio
async def test_set_pdf_url_only_for_current_generation(db_session, ready_course):
    service = CourseService(db_session)

    assert not await service.set_pdf_url(ready_course.id, 0, "https://cdn.example.com/v0.pdf")
    assert await service.set_pdf_url(ready_course.id, 1, "https://cdn.example.com/v1.pdf")
    assert not await service.set_pdf_url(ready_course.id, 1, "https://cdn.example.com/again.pdf")

    await db_session.refresh(ready_course)
    assert ready_course.pdf_url == "https://cdn.example.com/v1.pdf"


# ============================================================================
# Endpoints
# ============================================================================


def options_payload(**overrides) -> dict:
    return plan_options(**overrides).model_dump(mode="json")


class TestCourseEndpoints:
    @pytest.mark.asyncio
    async def test_publish(self, client, auth_headers, funded_user):
        response = await client.post("/api/v1/courses", json=options_payload(), headers=auth_headers)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["course"]["status"] == "pending"
        assert data["tokens_spent"] == plan_options().quote().total
        assert data["new_balance"] == 15_000 - data["tokens_spent"]

        listing = await client.get("/api/v1/courses", headers=auth_headers)
        assert [c["id"] for c in listing.json()] == [data["course"]["id"]]

    @pytest.mark.asyncio
    async def test_publish_without_tokens_is_409(self, client, auth_headers):
        response = await client.post("/api/v1/courses", json=options_payload(), headers=auth_headers)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["detail"]["error"] == "insufficient_tokens"

    @pytest.mark.asyncio
    async def test_unknown_workout_type_is_400(self, client, auth_headers, funded_user):
        payload = options_payload()
        payload["workout_types"] = ["Underwater Basket Weaving"]

        response = await client.post("/api/v1/courses", json=payload, headers=auth_headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_get_and_regenerate(self, client, auth_headers, ready_course):
        response = await client.get(f"/api/v1/courses/{ready_course.id}", headers=auth_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["content"] == SAMPLE_PLAN

        response = await client.post(
            f"/api/v1/courses/{ready_course.id}/regenerate",
            json={"scope": "day", "week": 1, "day": 1},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        data = response.json()
        assert data["tokens_spent"] == 30
        assert data["course_tokens_spent"] == ready_course.tokens_spent + 30

    @pytest.mark.asyncio
    async def test_day_scope_requires_day(self, client, auth_headers, ready_course):
        response = await client.post(
            f"/api/v1/courses/{ready_course.id}/regenerate",
            json={"scope": "day", "week": 1},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_unknown_course_is_404(self, client, auth_headers):
        response = await client.get("/api/v1/courses/999", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_course_quote(self, client):
        response = await client.post("/api/v1/pricing/course", json=options_payload())

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == plan_options().quote().total
        assert data["regeneration"] == {"day": 30, "week": 120}
        assert data["title"].startswith("2-Week Fitness Program")
