"""
Invite Schemas

Pydantic schemas for invitation requests and responses.
"""

import re
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from permission_slips.modules.users.models import UserRole

# Roles an invitation can grant
INVITABLE_ROLES = (UserRole.TEACHER, UserRole.REVIEWER, UserRole.ADMIN)


class InviteCreate(BaseModel):
    """Request body for POST /invites."""

    email: EmailStr
    role: UserRole
    school_id: str | None = Field(
        None, description="Target school; defaults to the caller's school"
    )

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        if v not in INVITABLE_ROLES:
            raise ValueError(
                f"Role must be one of: {', '.join(r.value for r in INVITABLE_ROLES)}"
            )
        return v


class InviteCreateResponse(BaseModel):
    id: str
    email: str
    role: UserRole
    school_id: str | None = None
    expires_at: datetime
    email_sent: bool


class InviteDetails(BaseModel):
    """Public details shown on the accept page."""

    email: str
    role: UserRole
    school_id: str | None = None
    school_name: str | None = None
    expires_at: datetime


class AcceptInviteRequest(BaseModel):
    """Request body for POST /invites/{token}/accept."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=10, max_length=128)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        return v

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """Require upper case, lower case, a digit and a special character."""
        checks = [
            (r"[A-Z]", "one uppercase letter"),
            (r"[a-z]", "one lowercase letter"),
            (r"[0-9]", "one number"),
            (r"[^A-Za-z0-9]", "one special character"),
        ]
        for pattern, label in checks:
            if not re.search(pattern, v):
                raise ValueError(f"Password must contain at least {label}")
        return v


class AcceptInviteResponse(BaseModel):
    user_id: str
    email: str
    role: UserRole
    school_id: str | None = None
    message: str = "Account created successfully"
