"""
Signed access tokens and the Redis-backed access-token denylist.

Access tokens are HS256 JWTs carrying identity hints only. Permission
decisions never read the ``role`` claim; see ``sermon_auth.core.permissions``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from sermon_auth.core.config import get_settings
from sermon_auth.core.errors import TokenBadSignature, TokenExpired, TokenMalformed
from sermon_auth.core.redis import get_redis

settings = get_settings()

REQUIRED_CLAIMS = ["exp", "iat", "sub", "jti"]


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: uuid.UUID
    email: str
    organization_id: Optional[uuid.UUID]
    role: Optional[str]
    jti: str
    issued_at: datetime
    expires_at: datetime


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def issue_access_token(
    user,
    organization_id: Optional[uuid.UUID] = None,
    role: Optional[str] = None,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for ``user`` scoped to an optional organization."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "org": str(organization_id) if organization_id else None,
        "role": role,
        "iat": now,
        "nbf": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Decode and verify an access token, mapping PyJWT failures onto the error taxonomy."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            leeway=settings.clock_skew_seconds,
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidSignatureError:
        raise TokenBadSignature()
    except jwt.InvalidTokenError:
        raise TokenMalformed()


def validate_access_token(token: str) -> AccessTokenClaims:
    """Validate signature, issuer, audience and lifetime; return typed claims."""
    payload = decode_access_token(token)
    try:
        user_id = uuid.UUID(payload["sub"])
        org = payload.get("org")
        organization_id = uuid.UUID(org) if org else None
        return AccessTokenClaims(
            user_id=user_id,
            email=payload.get("email") or "",
            organization_id=organization_id,
            role=payload.get("role"),
            jti=payload["jti"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        raise TokenMalformed()


# ---------------------------------------------------------------------------
# Access-token revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_access_token(jti: str, ttl_seconds: int) -> None:
    """Add an access-token id to the denylist until it would have expired anyway."""
    if ttl_seconds <= 0:
        return
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", ttl_seconds, "1")


async def is_access_token_revoked(jti: str) -> bool:
    """Check if an access-token id has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0
