"""
User Repository

Account lookups for login, sharing, invites and reviewer notification.
Emails are compared lower-cased. Writes flush only; the calling service
owns the transaction.
"""

import logging

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        school_id: str | None = None,
    ) -> User:
        """Add an active account and flush so its id is available."""
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            school_id=school_id,
            is_active=True,
        )
        db.add(user)
        await db.flush()
        logger.info(f"Created {role.value} account {user.id}")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        result = await db.execute(select(exists().where(User.email == email.lower())))
        return bool(result.scalar())

    @staticmethod
    async def list_by_school_and_role(
        db: AsyncSession,
        school_id: str | None,
        role: UserRole,
    ) -> list[User]:
        """Active accounts with a role in a school, e.g. the reviewers to notify."""
        result = await db.execute(
            select(User)
            .where(User.school_id == school_id, User.role == role, User.is_active.is_(True))
            .order_by(User.last_name, User.first_name)
        )
        return list(result.scalars().all())
