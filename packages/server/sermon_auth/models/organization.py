"""Organization model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
    is_active: bool = Field(default=True, nullable=False)
    max_users: Optional[int] = Field(default=None)  # null = unlimited
    max_transcription_minutes: int = Field(default=600, nullable=False)
