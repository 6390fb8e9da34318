"""
Invite Repository

Database operations for account invitations. The caller owns the commit.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.modules.invites.models import Invite
from permission_slips.modules.users.models import UserRole


async def create_invite(
    db: AsyncSession,
    *,
    email: str,
    role: UserRole,
    school_id: str | None,
    token_hash: str,
    expires_at: datetime,
    created_by: str | None,
) -> Invite:
    """Create a new invitation."""
    invite = Invite(
        email=email.lower(),
        role=role,
        school_id=school_id,
        token=token_hash,
        expires_at=expires_at,
        created_by=created_by,
    )
    db.add(invite)
    await db.flush()
    return invite


async def get_by_token(db: AsyncSession, token_hash: str) -> Invite | None:
    """Get invitation by token hash."""
    result = await db.execute(select(Invite).where(Invite.token == token_hash))
    return result.scalar_one_or_none()


async def get_by_token_for_update(db: AsyncSession, token_hash: str) -> Invite | None:
    """Get invitation by token hash, locking it until the transaction ends."""
    result = await db.execute(
        select(Invite)
        .where(Invite.token == token_hash)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_for_email(db: AsyncSession, email: str, now: datetime) -> Invite | None:
    """An unused, unexpired invitation for an email, if any."""
    result = await db.execute(
        select(Invite).where(
            Invite.email == email.lower(),
            Invite.used_at.is_(None),
            Invite.expires_at > now,
        )
    )
    return result.scalars().first()
