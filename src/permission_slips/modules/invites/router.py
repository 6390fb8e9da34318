"""
Invites Router

Endpoints:
- POST /invites - Invite a staff member (admins)
- GET /invites/{token} - Public invite details
- POST /invites/{token}/accept - Accept an invite and create the account

Security:
- Creating invites requires the INVITE_CREATE permission
- Lookup and accept are public; the token is the credential
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.auth import CurrentUser
from permission_slips.core.database import get_db
from permission_slips.core.permissions import Operation, require_permission
from permission_slips.modules.audit import get_request_context
from permission_slips.modules.invites import service
from permission_slips.modules.invites.schemas import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    InviteCreate,
    InviteCreateResponse,
    InviteDetails,
)
from permission_slips.modules.invites.service import InviteServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: InviteServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


@router.post(
    "",
    response_model=InviteCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Invite",
)
async def create_invite(
    data: InviteCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission(Operation.INVITE_CREATE)),
) -> InviteCreateResponse:
    """
    Invite a staff member. The invite link is emailed and expires in 7 days.

    An email failure does not fail the request; see `email_sent`.
    """
    ip_address, user_agent = get_request_context(request)
    try:
        invite, email_sent = await service.create_invite(
            db, user, data, ip_address=ip_address, user_agent=user_agent
        )
        return InviteCreateResponse(
            id=invite.id,
            email=invite.email,
            role=invite.role,
            school_id=invite.school_id,
            expires_at=invite.expires_at,
            email_sent=email_sent,
        )
    except InviteServiceError as e:
        _handle_service_error(e)


@router.get(
    "/{token}",
    response_model=InviteDetails,
    summary="Get Invite",
)
async def get_invite(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> InviteDetails:
    try:
        return await service.get_invite(db, token)
    except InviteServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{token}/accept",
    response_model=AcceptInviteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Accept Invite",
)
async def accept_invite(
    token: str,
    data: AcceptInviteRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AcceptInviteResponse:
    """Create the invited account. Single-use."""
    ip_address, user_agent = get_request_context(request)
    try:
        return await service.accept_invite(
            db, token, data, ip_address=ip_address, user_agent=user_agent
        )
    except InviteServiceError as e:
        _handle_service_error(e)
