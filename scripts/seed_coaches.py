"""Seed the coach catalogue into the database."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.models.coach import Coach


DEFAULT_COACHES = [
    {
        "id": "coach-anna-petrova",
        "slug": "anna-petrova",
        "name": "Anna Petrova",
        "headline": "Strength and posture for desk workers",
        "bio": "Former national-level powerlifter. Builds simple barbell programs around busy schedules.",
        "level": "Intermediate",
        "training_type": "Gym",
    },
    {
        "id": "coach-marco-silva",
        "slug": "marco-silva",
        "name": "Marco Silva",
        "headline": "Fat loss without burnout",
        "bio": "Conditioning coach focused on sustainable habits, circuits and walking volume.",
        "level": "Beginner",
        "training_type": "Mixed",
    },
    {
        "id": "coach-lena-hoffmann",
        "slug": "lena-hoffmann",
        "name": "Lena Hoffmann",
        "headline": "Mobility and joint-friendly training",
        "bio": "Physiotherapist turned coach. Specialises in returning to training after injury.",
        "level": "Beginner",
        "training_type": "Home",
    },
    {
        "id": "coach-james-okafor",
        "slug": "james-okafor",
        "name": "James Okafor",
        "headline": "Endurance for runners and rowers",
        "bio": "Marathoner and rowing coach. Pairs interval work with strength maintenance.",
        "level": "Advanced",
        "training_type": "Mixed",
    },
    {
        "id": "coach-sofia-kim",
        "slug": "sofia-kim",
        "name": "Sofia Kim",
        "headline": "Calisthenics from zero to muscle-up",
        "bio": "Bodyweight specialist. Progressions that work in a park, a hallway or a gym.",
        "level": "Intermediate",
        "training_type": "Home",
    },
]


async def seed_coaches():
    """Seed default coaches into the database."""
    engine = create_async_engine(settings.DATABASE_URL, echo=True)
    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        for coach_data in DEFAULT_COACHES:
            stmt = select(Coach).where(Coach.slug == coach_data["slug"])
            result = await session.execute(stmt)
            if result.scalar_one_or_none():
                print(f"Coach '{coach_data['name']}' already exists, skipping")
                continue

            session.add(Coach(**coach_data))
            print(f"Created coach: {coach_data['name']}")

        await session.commit()
        print(f"\nSeeded {len(DEFAULT_COACHES)} coaches successfully!")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_coaches())
