"""Authentication request/response schemas (login, refresh, password flows)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    organization_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Organization to scope the access token to (defaults to the first active membership)",
    )


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)
    access_token: Optional[str] = Field(
        default=None,
        description="The expiring access token; accepted for compatibility, never required",
    )


class RevokeRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class AuthUserInfo(BaseModel):
    user_id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    is_email_verified: bool = False


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until the access token expires


class LoginResponse(TokenPairResponse):
    user: AuthUserInfo
    organization_id: Optional[uuid.UUID] = None
    role: Optional[Role] = None


class RegisterResponse(BaseModel):
    user: AuthUserInfo
    message: str


class UserOrganizationItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: Role
    joined_at: datetime


class UserOrganizationsResponse(BaseModel):
    data: list[UserOrganizationItem]
