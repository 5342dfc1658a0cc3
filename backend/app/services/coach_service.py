"""Coach catalogue lookups."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.coach import Coach

logger = logging.getLogger(__name__)


class CoachService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_coaches(self) -> list[Coach]:
        stmt = select(Coach).where(Coach.is_active.is_(True)).order_by(Coach.name.asc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_slug(self, slug: str) -> Coach:
        stmt = select(Coach).where(Coach.slug == slug, Coach.is_active.is_(True))
        coach = (await self.db.execute(stmt)).scalar_one_or_none()
        if coach is None:
            raise NotFoundError("Coach", slug)
        return coach

    async def get_active_coach(self, coach_id: str, for_update: bool = False) -> Coach:
        """Active coach by id, optionally row-locked.

        Raises:
            NotFoundError: Unknown or inactive coach
        """
        stmt = select(Coach).where(Coach.id == coach_id, Coach.is_active.is_(True))
        if for_update:
            stmt = stmt.with_for_update()
        coach = (await self.db.execute(stmt)).scalar_one_or_none()
        if coach is None:
            raise NotFoundError("Coach", coach_id)
        return coach
