"""
Login: credential check and token-pair issuance.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.core.config import get_settings
from sermon_auth.core.credentials import (
    hash_password_async,
    password_needs_rehash,
    verify_password_async,
)
from sermon_auth.core.errors import AccountInactive, EmailNotVerified, InvalidCredentials
from sermon_auth.core.logging import redact_email
from sermon_auth.models.user import User
from sermon_auth.services.tokens import TokenPair, issue_token_pair

log = structlog.get_logger()
settings = get_settings()


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def login(
    email: str,
    password: str,
    session: AsyncSession,
    organization_id: Optional[uuid.UUID] = None,
) -> TokenPair:
    """Authenticate by email/password and issue a token pair.

    Unknown email, missing credential and wrong password are indistinguishable
    to the caller and cost one bcrypt verification each.
    """
    user = await get_user_by_email(email, session)

    if not await verify_password_async(password, user.password_hash if user else None):
        log.warning("auth.login_failure", email=redact_email(email))
        raise InvalidCredentials()

    if not user.is_active:
        log.warning("auth.login_inactive", user_id=str(user.id))
        raise AccountInactive()

    if settings.require_verified_email and not user.is_email_verified:
        log.warning("auth.login_unverified", user_id=str(user.id))
        raise EmailNotVerified()

    if password_needs_rehash(user.password_hash):
        user.password_hash = await hash_password_async(password)
        log.info("auth.password_rehashed", user_id=str(user.id))

    user.last_login_at = datetime.now(timezone.utc)
    session.add(user)

    pair = await issue_token_pair(user, session, organization_id=organization_id)
    log.info(
        "auth.login_success",
        user_id=str(user.id),
        org_id=str(pair.organization_id) if pair.organization_id else None,
    )
    return pair
