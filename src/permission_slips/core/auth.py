"""
Bearer-token authentication.

get_current_user turns an access token into a CurrentUser without touching
the database: role, school and name travel in the token claims issued at
login. What each role may do is decided in permissions.py.

In development only, tokens of the form "dev-<role>" (e.g. "dev-teacher")
authenticate as a fixed user of that role. They are refused whenever
PYTHON_ENV is production or staging.
"""

import logging
import os
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from permission_slips.core.config import settings
from permission_slips.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=True, description="Access token issued by /auth/login")


@dataclass
class CurrentUser:
    """The authenticated caller, as described by their access token."""

    id: str
    email: str
    role: str
    school_id: str | None = None  # None for super admins
    name: str | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, role={self.role})"


def _dev_tokens_allowed() -> bool:
    env = os.getenv("PYTHON_ENV", "").lower()
    allowed = settings.is_development and env not in ("production", "staging")
    if allowed:
        logger.warning("Development tokens are ENABLED. Never run this configuration in production.")
    return allowed


_DEV_SCHOOL_ID = "00000000-0000-0000-0000-00000000a001"
_DEV_ROLES = ["SUPER_ADMIN", "ADMIN", "TEACHER", "REVIEWER", "PARENT"]
_DEV_USERS = (
    {
        f"dev-{role.lower()}": CurrentUser(
            id=f"00000000-0000-0000-0000-00000000000{index}",
            email=f"{role.lower()}@permission-slips.dev",
            role=role,
            school_id=None if role == "SUPER_ADMIN" else _DEV_SCHOOL_ID,
            name=f"Development {role.title().replace('_', ' ')}",
        )
        for index, role in enumerate(_DEV_ROLES, 1)
    }
    if _dev_tokens_allowed()
    else {}
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(token: str) -> CurrentUser:
    """
    Build the caller from an access token.

    Raises:
        HTTPException 401: INVALID_TOKEN, INVALID_TOKEN_TYPE or INVALID_TOKEN_CLAIMS
    """
    if token in _DEV_USERS:
        return _DEV_USERS[token]

    claims = decode_token(token)
    if claims is None:
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    # Refresh tokens only work against /auth/refresh
    if claims.get("type", "access") != "access":
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    if not claims.get("sub") or not claims.get("role"):
        logger.warning("Access token without 'sub' or 'role' claim")
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")

    return CurrentUser(
        id=str(claims["sub"]),
        email=claims.get("email", ""),
        role=claims["role"],
        school_id=claims.get("school_id"),
        name=claims.get("name"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """FastAPI dependency returning the authenticated caller (401 otherwise)."""
    return user_from_token(credentials.credentials)


__all__ = ["CurrentUser", "get_current_user", "user_from_token"]
