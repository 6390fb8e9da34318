"""
Invite Service

Business logic for account invitations.

Flow:
1. An admin invites an email address with a role (TEACHER, REVIEWER, ADMIN)
   for a school. The plain token is emailed; only its hash is stored.
2. The invitee opens the link (get_invite) and accepts it with their name
   and a password (accept_invite).
3. Acceptance creates the user, marks the invite used and writes the
   audit row in ONE transaction, so an invite can never create two
   accounts.

Security:
- Tokens use secrets.token_urlsafe and are stored as SHA-256 hashes
- Tokens are never logged
- Invites expire after INVITE_EXPIRY_DAYS and are single-use
"""

import hashlib
import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.email import send_invite
from permission_slips.core.security import hash_password
from permission_slips.modules.audit import AuditAction, mask_ip_address, record
from permission_slips.modules.audit import repository as audit_repository
from permission_slips.modules.audit.service import build_entry_metadata
from permission_slips.modules.invites import repository
from permission_slips.modules.invites.models import Invite
from permission_slips.modules.invites.schemas import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    InviteCreate,
    InviteDetails,
)
from permission_slips.modules.schools.repository import SchoolRepository
from permission_slips.modules.users.models import UserRole
from permission_slips.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

# Constants
INVITE_EXPIRY_DAYS = 7
TOKEN_LENGTH = 32  # 256 bits of entropy when using token_urlsafe


def _hash_token(token: str) -> str:
    """Hex-encoded SHA-256 of a plain invite token."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_invite_token() -> str:
    return secrets.token_urlsafe(TOKEN_LENGTH)


# ============================================
# Exceptions
# ============================================


class InviteServiceError(Exception):
    """Base exception for invite service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InviteNotFoundError(InviteServiceError):
    def __init__(self):
        super().__init__("Invite not found.", "INVITE_NOT_FOUND", 404)


class InviteAlreadyUsedError(InviteServiceError):
    def __init__(self):
        super().__init__("This invite has already been used.", "INVITE_ALREADY_USED", 400)


class InviteExpiredError(InviteServiceError):
    def __init__(self):
        super().__init__("This invite has expired.", "INVITE_EXPIRED", 400)


class EmailAlreadyRegisteredError(InviteServiceError):
    def __init__(self):
        super().__init__(
            "An account with this email already exists.", "EMAIL_ALREADY_REGISTERED", 409
        )


class ActiveInviteExistsError(InviteServiceError):
    def __init__(self):
        super().__init__(
            "An active invite already exists for this email.", "ACTIVE_INVITE_EXISTS", 409
        )


class InviteForbiddenError(InviteServiceError):
    def __init__(self):
        super().__init__("You can only invite users to your own school.", "FORBIDDEN", 403)


class SchoolRequiredError(InviteServiceError):
    def __init__(self):
        super().__init__("A school is required for this invite.", "SCHOOL_REQUIRED", 400)


class SchoolNotFoundError(InviteServiceError):
    def __init__(self):
        super().__init__("School not found.", "SCHOOL_NOT_FOUND", 404)


# ============================================
# Service Functions
# ============================================


def _ensure_usable(invite: Invite | None) -> Invite:
    """Existence, then single use, then expiry."""
    if invite is None:
        logger.warning("Invite lookup failed: token not found")
        raise InviteNotFoundError()
    if invite.used_at is not None:
        logger.warning(f"Invite {invite.id} already used")
        raise InviteAlreadyUsedError()
    if datetime.now(UTC) > invite.expires_at:
        logger.warning(f"Invite {invite.id} expired")
        raise InviteExpiredError()
    return invite


async def create_invite(
    db: AsyncSession,
    user: CurrentUser,
    data: InviteCreate,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[Invite, bool]:
    """
    Create an invitation and email it.

    Admins invite into their own school; super admins into any school.

    Returns:
        Tuple of (Invite, email_sent)

    Raises:
        InviteForbiddenError, SchoolRequiredError, SchoolNotFoundError,
        EmailAlreadyRegisteredError, ActiveInviteExistsError
    """
    school_id = data.school_id or user.school_id
    if user.role != UserRole.SUPER_ADMIN.value and school_id != user.school_id:
        raise InviteForbiddenError()
    if school_id is None:
        raise SchoolRequiredError()

    token = generate_invite_token()
    now = datetime.now(UTC)

    try:
        school = await SchoolRepository.get_by_id(db, school_id)
        if not school:
            raise SchoolNotFoundError()
        if await UserRepository.email_exists(db, data.email):
            raise EmailAlreadyRegisteredError()
        if await repository.get_active_for_email(db, data.email, now):
            raise ActiveInviteExistsError()

        invite = await repository.create_invite(
            db,
            email=data.email,
            role=data.role,
            school_id=school_id,
            token_hash=_hash_token(token),
            expires_at=now + timedelta(days=INVITE_EXPIRY_DAYS),
            created_by=user.id,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Invite {invite.id} created by {user.id} for role {data.role.value}")
    await record(
        AuditAction.INVITE_CREATE,
        actor=user,
        resource_type="Invite",
        resource_id=invite.id,
        metadata={"role": data.role.value, "schoolId": school_id},
        ip_address=ip_address,
        user_agent=user_agent,
    )

    email_sent = False
    try:
        email_sent = await send_invite(
            to_email=invite.email,
            token=token,
            role=data.role.value,
            inviter_name=user.name or user.email,
            school_name=school.name,
            expiry_days=INVITE_EXPIRY_DAYS,
        )
        if not email_sent:
            logger.error(f"Failed to send invite email for invite {invite.id}")
    except Exception as e:
        logger.error(f"Exception sending invite email: {e}", exc_info=True)

    return invite, email_sent


async def get_invite(db: AsyncSession, token: str) -> InviteDetails:
    """
    Public details of a usable invite.

    Raises:
        InviteNotFoundError, InviteAlreadyUsedError, InviteExpiredError
    """
    invite = _ensure_usable(await repository.get_by_token(db, _hash_token(token)))
    return InviteDetails(
        email=invite.email,
        role=invite.role,
        school_id=invite.school_id,
        school_name=invite.school.name if invite.school else None,
        expires_at=invite.expires_at,
    )


async def accept_invite(
    db: AsyncSession,
    token: str,
    data: AcceptInviteRequest,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AcceptInviteResponse:
    """
    Accept an invite and create the account.

    Raises:
        InviteNotFoundError, InviteAlreadyUsedError, InviteExpiredError
        EmailAlreadyRegisteredError: An account already uses the invite's email
    """
    try:
        # ============================================
        # ATOMIC TRANSACTION: user + invite used + audit row
        # ============================================
        invite = _ensure_usable(await repository.get_by_token_for_update(db, _hash_token(token)))

        if await UserRepository.email_exists(db, invite.email):
            raise EmailAlreadyRegisteredError()

        user = await UserRepository.create(
            db,
            email=invite.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            role=invite.role,
            school_id=invite.school_id,
        )
        invite.used_at = datetime.now(UTC)

        await audit_repository.add_entry(
            db,
            action=AuditAction.USER_CREATED_VIA_INVITE.value,
            user_id=user.id,
            entity="User",
            entity_id=user.id,
            metadata=build_entry_metadata(
                AuditAction.USER_CREATED_VIA_INVITE,
                metadata={
                    "inviteId": invite.id,
                    "role": invite.role.value,
                    "schoolId": invite.school_id,
                },
                user_email=invite.email,
                user_role=invite.role.value,
                user_agent=user_agent,
                success=True,
                error_message=None,
            ),
            ip_address=mask_ip_address(ip_address),
        )

        await db.commit()
        # ============================================
        # END ATOMIC TRANSACTION
        # ============================================
    except IntegrityError as e:
        # Concurrent registration of the same email
        await db.rollback()
        raise EmailAlreadyRegisteredError() from e
    except Exception:
        await db.rollback()
        raise

    logger.info(f"User {user.id} created via invite {invite.id} ({invite.role.value})")
    return AcceptInviteResponse(
        user_id=user.id,
        email=user.email,
        role=invite.role,
        school_id=invite.school_id,
    )
