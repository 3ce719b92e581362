"""
Account service: registration, password reset, email verification, password change.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.core.config import get_settings
from sermon_auth.core.credentials import (
    generate_opaque_token,
    hash_password_async,
    validate_password_strength,
    verify_password_async,
)
from sermon_auth.core.errors import (
    EmailAlreadyRegistered,
    EmailVerificationTokenInvalid,
    InvalidCredentials,
    PasswordResetTokenInvalid,
    UserNotFound,
)
from sermon_auth.core.logging import redact_email
from sermon_auth.models.base import ensure_utc
from sermon_auth.models.user import User
from sermon_auth.services.auth import get_user_by_email, normalize_email
from sermon_auth.services.notifications import NotificationSender, notify
from sermon_auth.services.tokens import revoke_all_user_refresh_tokens
from sermon_auth_shared.schemas.auth import RegisterRequest

log = structlog.get_logger()
settings = get_settings()


def _expired(expires_at) -> bool:
    expires_at = ensure_utc(expires_at)
    return expires_at is None or expires_at <= datetime.now(timezone.utc)


def _issue_verification_token(user: User) -> str:
    token = generate_opaque_token()
    user.email_verification_token = token
    user.email_verification_expires_at = datetime.now(timezone.utc) + timedelta(
        hours=settings.email_verification_expire_hours
    )
    return token


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def register_user(req: RegisterRequest, session: AsyncSession) -> User:
    """Create an active, unverified user with a pending email-verification token."""
    validate_password_strength(req.password)

    email = normalize_email(req.email)
    if await get_user_by_email(email, session):
        raise EmailAlreadyRegistered()

    user = User(
        email=email,
        first_name=req.first_name,
        last_name=req.last_name,
        password_hash=await hash_password_async(req.password),
        is_active=True,
        is_email_verified=False,
    )
    _issue_verification_token(user)
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        raise EmailAlreadyRegistered()

    log.info("auth.registered", user_id=str(user.id), email=redact_email(email))
    return user


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

async def request_password_reset(
    email: str, session: AsyncSession, notifier: NotificationSender
) -> None:
    """Start a password reset. Returns normally whether or not the account exists."""
    user = await get_user_by_email(email, session)
    if user is None or not user.is_active:
        log.info("auth.password_reset_unknown", email=redact_email(email))
        return

    token = generate_opaque_token()
    user.password_reset_token = token
    user.password_reset_expires_at = datetime.now(timezone.utc) + timedelta(
        minutes=settings.password_reset_expire_minutes
    )
    session.add(user)
    await session.commit()

    await notify(
        notifier.send_password_reset_email(user.email, user.full_name, token),
        "auth.password_reset_email_failed",
        user_id=str(user.id),
    )
    log.info("auth.password_reset_requested", user_id=str(user.id))


async def reset_password(token: str, new_password: str, session: AsyncSession) -> User:
    """Set a new password from a reset token and revoke every session of the user."""
    validate_password_strength(new_password)

    result = await session.execute(select(User).where(User.password_reset_token == token))
    user = result.scalar_one_or_none()
    if user is None or _expired(user.password_reset_expires_at):
        raise PasswordResetTokenInvalid()

    user.password_hash = await hash_password_async(new_password)
    user.password_reset_token = None
    user.password_reset_expires_at = None
    session.add(user)
    await session.flush()

    await revoke_all_user_refresh_tokens(user.id, session)
    log.info("auth.password_reset", user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

async def request_email_verification(
    user: User, session: AsyncSession, notifier: NotificationSender
) -> bool:
    """Send the user's verification token, issuing a new one if none is live.

    No-op for verified users.
    """
    if user.is_email_verified:
        return False

    token = user.email_verification_token
    if token is None or _expired(user.email_verification_expires_at):
        token = _issue_verification_token(user)
        session.add(user)
    await session.commit()

    return await notify(
        notifier.send_email_verification(user.email, user.full_name, token),
        "auth.verification_email_failed",
        user_id=str(user.id),
    )


async def verify_email(token: str, session: AsyncSession) -> User:
    result = await session.execute(select(User).where(User.email_verification_token == token))
    user = result.scalar_one_or_none()
    if user is None or _expired(user.email_verification_expires_at):
        raise EmailVerificationTokenInvalid()

    user.is_email_verified = True
    user.email_verification_token = None
    user.email_verification_expires_at = None
    session.add(user)
    await session.flush()

    log.info("auth.email_verified", user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------

async def change_password(
    user_id: uuid.UUID,
    current_password: str,
    new_password: str,
    session: AsyncSession,
) -> User:
    """Replace the password of a signed-in user; all refresh tokens are revoked."""
    user = await session.get(User, user_id)
    if user is None:
        raise UserNotFound()

    if not await verify_password_async(current_password, user.password_hash):
        log.warning("auth.change_password_failure", user_id=str(user.id))
        raise InvalidCredentials("Current password is incorrect")

    validate_password_strength(new_password)

    user.password_hash = await hash_password_async(new_password)
    session.add(user)
    await session.flush()

    await revoke_all_user_refresh_tokens(user.id, session)
    log.info("auth.password_changed", user_id=str(user.id))
    return user
