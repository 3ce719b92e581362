"""
Organization and membership schemas shared between the server and its clients.

Covers: org bootstrap request/response, member listing, role and status
changes. Search and pagination are not part of this surface.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import Role, parse_role


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=100,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe org identifier",
    )
    max_users: Optional[int] = Field(default=None, ge=1, description="Seat limit (null = unlimited)")


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    is_active: bool
    max_users: Optional[int] = None
    max_transcription_minutes: int
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    user_id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    role: Role
    is_active: bool
    is_pending: bool
    invited_by_user_id: Optional[uuid.UUID] = None
    invitation_accepted_at: Optional[datetime] = None
    created_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberResponse]


class MemberRoleUpdateRequest(BaseModel):
    role: Role

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        if isinstance(value, str):
            return parse_role(value)
        return value


class MemberStatusUpdateRequest(BaseModel):
    is_active: bool
