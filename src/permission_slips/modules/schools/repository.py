"""
School Repository

Schools are created by the seed script; the services only read them.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.modules.schools.models import School

logger = logging.getLogger(__name__)


class SchoolRepository:
    """Repository for school lookups."""

    @staticmethod
    async def get_by_id(db: AsyncSession, school_id: str) -> School | None:
        """Get a school by ID. Used to check invite targets and to title PDFs."""
        result = await db.execute(select(School).where(School.id == school_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create(db: AsyncSession, name: str) -> tuple[School, bool]:
        """
        Return the school with this name, creating it if needed.

        The caller owns the commit.

        Returns:
            (school, created)
        """
        result = await db.execute(select(School).where(School.name == name))
        school = result.scalar_one_or_none()
        if school:
            return school, False

        school = School(name=name, is_active=True)
        db.add(school)
        await db.flush()
        logger.info(f"Created school: {school.id}")
        return school, True
