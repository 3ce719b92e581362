"""Invitation schemas (invite a user into an organization, accept the invite)."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import Role, parse_role


class InviteUserRequest(BaseModel):
    """Invite someone by email into the caller's organization."""
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = Role.ORGANIZATION_USER
    message: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        if isinstance(value, str):
            return parse_role(value)
        return value


class InviteUserResponse(BaseModel):
    email: str
    user_id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
    email_sent: bool
    warnings: list[str] = []
    invitation_token: Optional[str] = None  # only echoed back in debug deployments


class AcceptInvitationRequest(BaseModel):
    invitation_token: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AcceptInvitationResponse(BaseModel):
    organization_id: uuid.UUID
    organization_name: str
    role: Role
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
