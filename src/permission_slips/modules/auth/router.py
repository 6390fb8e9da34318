"""Authentication router: password login and token refresh."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from permission_slips.core.database import get_db
from permission_slips.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from permission_slips.modules.audit import AuditAction, get_request_context, record
from permission_slips.modules.auth.schemas import (
    AccountSummary,
    LoginRequest,
    RefreshRequest,
    TokenPair,
)
from permission_slips.modules.users.models import User
from permission_slips.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
    )


def _ensure_active(user: User) -> None:
    if not user.is_active:
        logger.warning(f"Token requested for inactive account: {user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ACCOUNT_INACTIVE",
                "message": "Your account has been deactivated.",
            },
        )


def issue_tokens(user: User) -> TokenPair:
    """
    Issue a token pair for an account.

    The access token carries the claims get_current_user reads (email, role,
    school_id, name) so authorization needs no database round trip.
    """
    claims = {
        "email": user.email,
        "role": user.role.value,
        "school_id": user.school_id,
        "name": user.full_name,
    }
    return TokenPair(
        access_token=create_access_token(subject=str(user.id), additional_claims=claims),
        refresh_token=create_refresh_token(subject=str(user.id)),
        account=AccountSummary(
            id=str(user.id),
            email=user.email,
            full_name=user.full_name,
            role=user.role.value,
            school_id=user.school_id,
        ),
    )


@router.post("/login", response_model=TokenPair)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> TokenPair:
    """
    Authenticate with email and password.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    user = await UserRepository.get_by_email(db, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning("Login attempt with invalid credentials")
        raise _unauthorized("INVALID_CREDENTIALS", "Invalid email or password.")

    _ensure_active(user)
    tokens = issue_tokens(user)

    ip_address, user_agent = get_request_context(request)
    await record(
        AuditAction.USER_LOGIN,
        user_id=user.id,
        user_email=user.email,
        user_role=user.role.value,
        resource_type="User",
        resource_id=user.id,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    logger.info(f"User logged in: {user.id} (role: {user.role.value})")
    return tokens


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenPair:
    """
    Exchange a refresh token for a new token pair.

    Role and school are re-read from the account, so a changed role takes
    effect on the next refresh.
    """
    payload = decode_token(body.refresh_token)
    if payload is None or payload.get("type") != "refresh" or not payload.get("sub"):
        raise _unauthorized("INVALID_REFRESH_TOKEN", "Invalid or expired refresh token.")

    user = await UserRepository.get_by_id(db, payload["sub"])
    if not user:
        raise _unauthorized("INVALID_REFRESH_TOKEN", "Invalid or expired refresh token.")

    _ensure_active(user)
    return issue_tokens(user)
