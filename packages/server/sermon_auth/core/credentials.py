"""
Credential primitives: password hashing, strength policy, opaque tokens.

bcrypt embeds the salt and cost in its ``$2b$<cost>$`` output, so a stored
hash is self-describing and ``password_needs_rehash`` can compare its cost
against the configured one.
"""

from __future__ import annotations

import asyncio
import base64
import secrets
import string
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import bcrypt

from sermon_auth.core.config import get_settings
from sermon_auth.core.errors import WeakPassword

settings = get_settings()

BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    return bcrypt.hashpw(
        password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode()


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Verify a password against a bcrypt hash. Missing or garbled hashes never match."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


def password_needs_rehash(hashed: str) -> bool:
    """True when the stored hash was produced with a different cost factor."""
    try:
        cost = int(hashed.split("$")[2])
    except (IndexError, ValueError):
        return True
    return cost != settings.bcrypt_rounds


@lru_cache
def _dummy_hash() -> str:
    return hash_password(secrets.token_urlsafe(16))


def verify_dummy_password(password: str) -> bool:
    """Burn one bcrypt verification so unknown users cost the same as wrong passwords."""
    verify_password(password, _dummy_hash())
    return False


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return await asyncio.to_thread(verify_dummy_password, password)
    return await asyncio.to_thread(verify_password, password, hashed)


# ---------------------------------------------------------------------------
# Strength policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    require_uppercase: bool = False
    require_lowercase: bool = False
    require_digit: bool = False
    require_symbol: bool = False

    @classmethod
    def from_settings(cls) -> "PasswordPolicy":
        return cls(
            min_length=settings.password_min_length,
            require_uppercase=settings.password_require_uppercase,
            require_lowercase=settings.password_require_lowercase,
            require_digit=settings.password_require_digit,
            require_symbol=settings.password_require_symbol,
        )


def validate_password_strength(password: str, policy: Optional[PasswordPolicy] = None) -> None:
    """Raise WeakPassword listing every rule the password fails."""
    policy = policy or PasswordPolicy.from_settings()
    problems: list[str] = []

    if not password or not password.strip():
        problems.append("Password is required")
    elif len(password) < policy.min_length:
        problems.append(f"Password must be at least {policy.min_length} characters long")

    if len(password.encode()) > BCRYPT_MAX_BYTES:
        problems.append(f"Password must be at most {BCRYPT_MAX_BYTES} bytes long")
    if policy.require_uppercase and not any(c.isupper() for c in password):
        problems.append("Password must contain an uppercase letter")
    if policy.require_lowercase and not any(c.islower() for c in password):
        problems.append("Password must contain a lowercase letter")
    if policy.require_digit and not any(c.isdigit() for c in password):
        problems.append("Password must contain a digit")
    if policy.require_symbol and not any(c in string.punctuation for c in password):
        problems.append("Password must contain a symbol")

    if problems:
        raise WeakPassword(problems)


# ---------------------------------------------------------------------------
# Opaque tokens
# ---------------------------------------------------------------------------

def generate_opaque_token(byte_length: int = 32) -> str:
    """Random URL-safe token (base64url, no padding)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(byte_length)).rstrip(b"=").decode()
