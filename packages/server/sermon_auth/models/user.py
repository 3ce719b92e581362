"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)  # stored lower-cased
    first_name: str = Field(default="", nullable=False)
    last_name: str = Field(default="", nullable=False)
    password_hash: Optional[str] = Field(default=None)  # null until the first credential is set
    is_email_verified: bool = Field(default=False, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    email_verification_token: Optional[str] = Field(default=None, unique=True, index=True)
    email_verification_expires_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    password_reset_token: Optional[str] = Field(default=None, unique=True, index=True)
    password_reset_expires_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    last_login_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
