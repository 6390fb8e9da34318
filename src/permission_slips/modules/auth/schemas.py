"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class AccountSummary(BaseModel):
    """The signed-in account as the client needs it for role-based navigation."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    role: str
    school_id: str | None = None


class TokenPair(BaseModel):
    """Access and refresh tokens, with the account they were issued for."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    account: AccountSummary
