"""Persisted refresh tokens (one row per issued token, rotation links rows)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class RefreshToken(UUIDMixin, SQLModel, table=True):
    __tablename__ = "refresh_tokens"

    token: str = Field(unique=True, index=True, nullable=False)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, nullable=False)
    organization_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id")
    issued_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    revoked_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    replaced_by_id: Optional[uuid.UUID] = Field(default=None)
