"""Pytest configuration and shared fixtures for backend tests."""

import os
import sys
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

# Add parent directory to path for app module discovery
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment BEFORE importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test_jwt_secret")

from app.api.deps import get_db
from app.core.arq_config import set_arq_pool
from app.core.database import Base, utcnow
from app.main import app
from app.models.coach import Coach
from app.models.coach_request import CoachRequest, CoachRequestStatus
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.content_generator import GeneratedContent
from app.services.token_service import TokenService


SAMPLE_PLAN = """# Overview

Four weeks of progressive full-body training.

## Week 1

### Day 1
- Goblet squat 3x10, rest 90s

### Day 2
- Push-up 3x12, rest 60s

## Week 2

### Day 1
- Split squat 3x8 per side, rest 90s

### Day 2
- Incline push-up 3x10, rest 60s
"""


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database file.

    A file (not ``:memory:``) lets several sessions, and so several
    concurrent tasks, see the same data.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def arq_pool():
    """Replace the Redis-backed arq pool with a mock that records enqueues."""
    pool = MagicMock()
    pool.enqueue_job = AsyncMock(return_value=MagicMock(job_id="test-job"))
    pool.close = AsyncMock()
    set_arq_pool(pool)
    yield pool
    set_arq_pool(None)


def enqueued(pool, function_name: str) -> list:
    """Calls of ``pool.enqueue_job`` for one task name."""
    return [c for c in pool.enqueue_job.call_args_list if c.args[0] == function_name]


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a test user."""
    user = User(email="test@example.com", name="Test User")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session):
    user = User(email="other@example.com", name="Other User")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_coach(db_session):
    """Create an active coach."""
    coach = Coach(
        id="coach-anna",
        slug="anna-petrova",
        name="Anna Petrova",
        headline="Strength and posture",
        level="Intermediate",
        training_type="Gym",
    )
    db_session.add(coach)
    await db_session.commit()
    return coach


@pytest_asyncio.fixture
async def funded_user(db_session, test_user):
    """Test user with 15,000 tokens."""
    await TokenService(db_session).record_topup(
        test_user.id, 15_000, meta={"reason": "grant"}
    )
    return test_user


@pytest.fixture
def auth_headers(test_user):
    token, _ = AuthService.create_access_token(test_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client against the app, with ``get_db`` bound to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


class FakeGenerator:
    """Content generator stand-in; fails the first ``failures`` calls."""

    def __init__(self, failures: int = 0, content: str = SAMPLE_PLAN):
        self.failures = failures
        self.content = content
        self.calls = 0
        self.section_calls = []

    def _maybe_fail(self):
        from app.services.content_generator import ContentGenerationError

        self.calls += 1
        if self.calls <= self.failures:
            raise ContentGenerationError("provider unavailable")

    async def generate_course(self, options, notes=None):
        self._maybe_fail()
        advice = "Eat 1.6 g/kg protein." if options.nutrition_tips else None
        return GeneratedContent(content=self.content, nutrition_advice=advice)

    async def regenerate_section(self, content, options, scope, week, day=None):
        self._maybe_fail()
        self.section_calls.append((scope, week, day))
        if day is not None:
            return f"### Day {day}\n- Regenerated day {day} of week {week}"
        return f"## Week {week}\n\n### Day 1\n- Regenerated week {week}"


@pytest.fixture
def fake_generator():
    return FakeGenerator()


async def make_coach_request(
    db_session,
    user,
    coach,
    status=CoachRequestStatus.PENDING,
    available_in=timedelta(hours=24),
    tokens_charged=37_000,
    **overrides,
) -> CoachRequest:
    """Insert a coach request directly (no debit)."""
    values = dict(
        user_id=user.id,
        coach_id=coach.id,
        coach_slug=coach.slug,
        goal="Strength",
        level="Intermediate",
        training_type="Gym",
        equipment="Full gym",
        days_per_week=4,
        status=status,
        tokens_charged=tokens_charged,
        available_at=utcnow() + available_in,
    )
    values.update(overrides)
    request = CoachRequest(**values)
    db_session.add(request)
    await db_session.commit()
    await db_session.refresh(request)
    return request
