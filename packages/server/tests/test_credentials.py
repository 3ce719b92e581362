"""
Tests for credential primitives.

Covers:
- bcrypt hashing and verification
- Rehash detection on cost change
- Password strength policy
- Opaque token generation
"""

from __future__ import annotations

import base64
from unittest.mock import patch

import bcrypt
import pytest

from sermon_auth.core.credentials import (
    PasswordPolicy,
    generate_opaque_token,
    hash_password,
    hash_password_async,
    password_needs_rehash,
    validate_password_strength,
    verify_password,
    verify_password_async,
)
from sermon_auth.core.errors import WeakPassword


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_hash_and_verify(self):
        password = "MySecureP@ssw0rd!"
        hashed = hash_password(password)
        assert hashed != password
        assert hashed.startswith("$2b$04$")
        assert verify_password(password, hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("correct-password")
        assert not verify_password("wrong-password", hashed)

    def test_different_hashes_for_same_password(self):
        """bcrypt uses random salt, so hashes differ."""
        h1 = hash_password("same-password")
        h2 = hash_password("same-password")
        assert h1 != h2
        assert verify_password("same-password", h1)
        assert verify_password("same-password", h2)

    def test_missing_or_garbled_hash_never_matches(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "")
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_needs_rehash_when_cost_differs(self):
        current = hash_password("password123")
        assert not password_needs_rehash(current)
        stronger = bcrypt.hashpw(b"password123", bcrypt.gensalt(rounds=5)).decode()
        assert password_needs_rehash(stronger)
        assert password_needs_rehash("garbage")

    async def test_async_wrappers(self):
        hashed = await hash_password_async("password123")
        assert await verify_password_async("password123", hashed)
        assert not await verify_password_async("password124", hashed)

    async def test_missing_hash_still_runs_bcrypt(self):
        with patch("sermon_auth.core.credentials.bcrypt.checkpw", wraps=bcrypt.checkpw) as checkpw:
            assert not await verify_password_async("password123", None)
        assert checkpw.call_count == 1


# ---------------------------------------------------------------------------
# Strength policy
# ---------------------------------------------------------------------------

class TestPasswordStrength:
    def test_default_policy_accepts_eight_characters(self):
        validate_password_strength("abcdefgh")

    def test_too_short(self):
        with pytest.raises(WeakPassword) as exc_info:
            validate_password_strength("short")
        assert "at least 8 characters" in exc_info.value.problems[0]
        assert exc_info.value.code == "weak_password"

    def test_blank_password(self):
        with pytest.raises(WeakPassword, match="Password is required"):
            validate_password_strength("        ")

    def test_reports_every_unmet_rule(self):
        policy = PasswordPolicy(
            min_length=12,
            require_uppercase=True,
            require_digit=True,
            require_symbol=True,
        )
        with pytest.raises(WeakPassword) as exc_info:
            validate_password_strength("lowercase", policy)
        assert len(exc_info.value.problems) == 4

    def test_strict_policy_satisfied(self):
        policy = PasswordPolicy(
            min_length=10,
            require_uppercase=True,
            require_lowercase=True,
            require_digit=True,
            require_symbol=True,
        )
        validate_password_strength("Sermon-Notes-2024", policy)

    def test_bcrypt_byte_ceiling(self):
        with pytest.raises(WeakPassword, match="72 bytes"):
            validate_password_strength("é" * 40)


# ---------------------------------------------------------------------------
# Opaque tokens
# ---------------------------------------------------------------------------

class TestOpaqueTokens:
    def test_default_length_and_alphabet(self):
        token = generate_opaque_token()
        assert "=" not in token
        assert len(token) == 43
        padded = token + "=" * (-len(token) % 4)
        assert len(base64.urlsafe_b64decode(padded)) == 32

    def test_tokens_are_unique(self):
        assert len({generate_opaque_token() for _ in range(100)}) == 100

    def test_custom_length(self):
        assert len(generate_opaque_token(16)) == 22
