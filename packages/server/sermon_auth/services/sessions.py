"""
Session revocation: logout of every session or of a single refresh token.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sermon_auth.core.tokens import AccessTokenClaims, revoke_access_token
from sermon_auth.services.tokens import (
    revoke_all_user_refresh_tokens,
    revoke_refresh_token,
)

log = structlog.get_logger()


async def logout(
    user_id: uuid.UUID,
    session: AsyncSession,
    claims: Optional[AccessTokenClaims] = None,
) -> int:
    """Revoke every refresh token of the user and deny-list the presenting access token.

    Idempotent: a second call revokes nothing and still succeeds.
    """
    count = await revoke_all_user_refresh_tokens(user_id, session)
    if claims is not None:
        remaining = int((claims.expires_at - datetime.now(timezone.utc)).total_seconds())
        await revoke_access_token(claims.jti, remaining)
    log.info("auth.logout", user_id=str(user_id), revoked=count)
    return count


async def logout_session(
    refresh_token: str,
    session: AsyncSession,
    user_id: Optional[uuid.UUID] = None,
) -> int:
    """Revoke a single refresh token. Unknown or already-revoked tokens are a no-op."""
    count = await revoke_refresh_token(refresh_token, session, user_id=user_id)
    log.info("auth.session_revoked", revoked=count)
    return count
