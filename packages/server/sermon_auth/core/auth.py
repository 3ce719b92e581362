"""
Authentication and authorization dependencies.

- Bearer access-token authentication with Redis revocation list
- Capability checks bound at route registration via ``require_capability``
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from sermon_auth.core.database import get_session
from sermon_auth.core.errors import (
    AccountInactive,
    InsufficientPermission,
    MembershipInactive,
    NotAMember,
    OrganizationInactive,
    TokenMalformed,
    TokenRevoked,
)
from sermon_auth.core.permissions import Decision, authorize
from sermon_auth.core.tokens import (
    AccessTokenClaims,
    is_access_token_revoked,
    validate_access_token,
)
from sermon_auth.models.membership import Membership
from sermon_auth.models.user import User
from sermon_auth_shared.schemas.common import Capability, DenyReason

log = structlog.get_logger()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


class AuthenticatedUser:
    """Container for an authenticated user, the token they presented and their org context."""

    def __init__(
        self,
        user: User,
        claims: AccessTokenClaims,
        token: str,
        membership: Optional[Membership] = None,
    ):
        self.user = user
        self.claims = claims
        self.token = token
        self.membership = membership
        self.user_id = user.id
        self.org_id = membership.organization_id if membership else None
        self.role = membership.role if membership else None


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise TokenMalformed("Authentication required")
    token = authorization[7:].strip()
    if not token:
        raise TokenMalformed("Authentication required")
    return token


async def get_current_user(
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Authenticate the bearer access token and load its (active) user."""
    token = _bearer_token(authorization)
    claims = validate_access_token(token)

    if await is_access_token_revoked(claims.jti):
        raise TokenRevoked("Session has been revoked")

    user = await session.get(User, claims.user_id)
    if user is None:
        raise TokenMalformed()
    if not user.is_active:
        raise AccountInactive()

    return AuthenticatedUser(user=user, claims=claims, token=token)


_DENY_ERRORS = {
    DenyReason.USER_INACTIVE: AccountInactive,
    DenyReason.NOT_A_MEMBER: NotAMember,
    DenyReason.ORGANIZATION_INACTIVE: OrganizationInactive,
    DenyReason.MEMBERSHIP_INACTIVE: MembershipInactive,
    DenyReason.INSUFFICIENT_PERMISSION: InsufficientPermission,
}


def raise_for_decision(decision: Decision) -> None:
    """Turn a deny decision into the matching HTTP-facing error."""
    if decision.allowed:
        return
    raise _DENY_ERRORS[decision.reason]()


def require_capability(capability: Capability):
    """Build a dependency that authorizes ``capability`` in the path's organization."""

    async def dependency(
        organization_id: uuid.UUID,
        auth: AuthenticatedUser = Depends(get_current_user),
        session: AsyncSession = Depends(get_session),
    ) -> AuthenticatedUser:
        decision = await authorize(auth.user_id, organization_id, capability, session)
        raise_for_decision(decision)
        return AuthenticatedUser(
            user=auth.user,
            claims=auth.claims,
            token=auth.token,
            membership=decision.membership,
        )

    dependency.__name__ = f"require_{capability.value}"
    return dependency
