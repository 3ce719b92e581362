"""User-Organization membership (one row per pair, carries invitation state)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class Membership(TimestampMixin, SQLModel, table=True):
    __tablename__ = "memberships"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    role: str = Field(nullable=False, default="OrganizationUser")  # OrganizationAdmin | OrganizationUser | ReadOnlyUser
    is_active: bool = Field(default=False, nullable=False)
    invitation_token: Optional[str] = Field(default=None, unique=True, index=True)
    invited_by_user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    invitation_created_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    invitation_accepted_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )

    @property
    def is_pending(self) -> bool:
        return self.invitation_token is not None and self.invitation_accepted_at is None
