"""
Refresh-token service: issuance, single-use rotation, revocation and sweep.

A refresh token is usable iff ``revoked_at`` is null and ``expires_at`` is in
the future. Every state change is a conditional UPDATE guarded on
``revoked_at IS NULL`` so concurrent callers cannot both win a rotation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.core.config import get_settings
from sermon_auth.core.credentials import generate_opaque_token
from sermon_auth.core.errors import InvalidRefreshToken
from sermon_auth.core.tokens import issue_access_token
from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth.models.refresh_token import RefreshToken
from sermon_auth.models.user import User

log = structlog.get_logger()
settings = get_settings()


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    user: User
    organization_id: Optional[uuid.UUID] = None
    role: Optional[str] = None
    token_type: str = "bearer"

    @property
    def expires_in(self) -> int:
        return settings.access_token_expire_minutes * 60


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------

async def _insert_refresh_token(
    user_id: uuid.UUID,
    organization_id: Optional[uuid.UUID],
    session: AsyncSession,
) -> RefreshToken:
    now = datetime.now(timezone.utc)
    row = RefreshToken(
        token=generate_opaque_token(),
        user_id=user_id,
        organization_id=organization_id,
        issued_at=now,
        expires_at=now + timedelta(days=settings.refresh_token_expire_days),
    )
    session.add(row)
    await session.flush()
    return row


async def issue_refresh_token(
    user: User,
    session: AsyncSession,
    organization_id: Optional[uuid.UUID] = None,
) -> str:
    """Persist and return a new refresh token for ``user``."""
    row = await _insert_refresh_token(user.id, organization_id, session)
    return row.token


async def resolve_active_membership(
    user_id: uuid.UUID,
    organization_id: Optional[uuid.UUID],
    session: AsyncSession,
) -> Optional[Membership]:
    """The active membership for the requested org, else the user's first active one."""
    query = (
        select(Membership)
        .join(Organization, Organization.id == Membership.organization_id)
        .where(
            Membership.user_id == user_id,
            Membership.is_active == True,  # noqa: E712
            Organization.is_active == True,  # noqa: E712
        )
    )
    if organization_id is not None:
        result = await session.execute(
            query.where(Membership.organization_id == organization_id)
        )
        membership = result.scalar_one_or_none()
        if membership is not None:
            return membership

    result = await session.execute(query.order_by(Membership.created_at))
    return result.scalars().first()


async def issue_token_pair(
    user: User,
    session: AsyncSession,
    organization_id: Optional[uuid.UUID] = None,
) -> TokenPair:
    """Issue an access token plus refresh token, scoped from a fresh membership read."""
    membership = await resolve_active_membership(user.id, organization_id, session)
    org_id = membership.organization_id if membership else None
    role = membership.role if membership else None

    refresh = await issue_refresh_token(user, session, organization_id=org_id)
    access = issue_access_token(user, org_id, role)
    return TokenPair(
        access_token=access,
        refresh_token=refresh,
        user=user,
        organization_id=org_id,
        role=role,
    )


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------

async def refresh_tokens(
    access_token: Optional[str],
    refresh_token: str,
    session: AsyncSession,
) -> TokenPair:
    """Exchange a refresh token for a new pair; the presented token is consumed.

    ``access_token`` is accepted for client compatibility; it is never
    consulted, so an expired access token does not block a refresh.
    """
    now = datetime.now(timezone.utc)

    claimed = await session.execute(
        update(RefreshToken)
        .where(
            RefreshToken.token == refresh_token,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .values(revoked_at=now)
        .returning(RefreshToken.id, RefreshToken.user_id, RefreshToken.organization_id)
        .execution_options(synchronize_session=False)
    )
    row = claimed.first()
    if row is None:
        await _log_unusable_token(refresh_token, session)
        raise InvalidRefreshToken()
    old_id, user_id, organization_id = row

    user = await session.get(User, user_id, populate_existing=True)
    if user is None or not user.is_active:
        revoked = await revoke_all_user_refresh_tokens(user_id, session)
        await session.commit()
        log.warning("token.refresh_inactive_user", user_id=str(user_id), revoked=revoked)
        raise InvalidRefreshToken()

    membership = await resolve_active_membership(user.id, organization_id, session)
    new_org_id = membership.organization_id if membership else None
    role = membership.role if membership else None

    new_row = await _insert_refresh_token(user.id, new_org_id, session)
    await session.execute(
        update(RefreshToken)
        .where(RefreshToken.id == old_id)
        .values(replaced_by_id=new_row.id)
        .execution_options(synchronize_session=False)
    )
    await session.flush()

    log.info("token.refreshed", user_id=str(user.id), org_id=str(new_org_id) if new_org_id else None)
    return TokenPair(
        access_token=issue_access_token(user, new_org_id, role),
        refresh_token=new_row.token,
        user=user,
        organization_id=new_org_id,
        role=role,
    )


async def _log_unusable_token(refresh_token: str, session: AsyncSession) -> None:
    result = await session.execute(
        select(RefreshToken).where(RefreshToken.token == refresh_token)
    )
    existing = result.scalar_one_or_none()
    if existing is None:
        log.info("token.refresh_unknown")
    elif existing.revoked_at is not None and existing.replaced_by_id is not None:
        log.warning(
            "token.refresh_reuse_detected",
            user_id=str(existing.user_id),
            token_id=str(existing.id),
        )
    elif existing.revoked_at is not None:
        log.info("token.refresh_revoked", user_id=str(existing.user_id))
    else:
        log.info("token.refresh_expired", user_id=str(existing.user_id))


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------

async def revoke_refresh_token(
    refresh_token: str,
    session: AsyncSession,
    user_id: Optional[uuid.UUID] = None,
) -> int:
    """Revoke a single refresh token. Idempotent; returns the number of rows changed.

    When ``user_id`` is given only a token owned by that user is revoked.
    """
    stmt = update(RefreshToken).where(
        RefreshToken.token == refresh_token, RefreshToken.revoked_at.is_(None)
    )
    if user_id is not None:
        stmt = stmt.where(RefreshToken.user_id == user_id)
    result = await session.execute(
        stmt.values(revoked_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def revoke_all_user_refresh_tokens(user_id: uuid.UUID, session: AsyncSession) -> int:
    """Revoke every unrevoked refresh token of ``user_id``."""
    result = await session.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .values(revoked_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        log.info("token.revoked_all", user_id=str(user_id), count=result.rowcount)
    return result.rowcount


async def sweep_expired_refresh_tokens(
    session: AsyncSession, now: Optional[datetime] = None
) -> int:
    """Mark expired, still-unrevoked refresh tokens as revoked."""
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        update(RefreshToken)
        .where(RefreshToken.revoked_at.is_(None), RefreshToken.expires_at <= now)
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
