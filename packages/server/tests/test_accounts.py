"""
Tests for login and the account flows.

Covers:
- Login: uniform failures, inactive and unverified accounts, rehash
- Registration
- Password reset (no enumeration, expiry, session revocation)
- Email verification
- Password change
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import bcrypt
import pytest

from sermon_auth.core.config import get_settings
from sermon_auth.core.credentials import verify_password
from sermon_auth.core.errors import (
    AccountInactive,
    EmailAlreadyRegistered,
    EmailNotVerified,
    EmailVerificationTokenInvalid,
    InvalidCredentials,
    InvalidRefreshToken,
    PasswordResetTokenInvalid,
    WeakPassword,
)
from sermon_auth.core.tokens import validate_access_token
from sermon_auth.models.user import User
from sermon_auth.services.accounts import (
    change_password,
    register_user,
    request_email_verification,
    request_password_reset,
    reset_password,
    verify_email,
)
from sermon_auth.services.auth import login
from sermon_auth.services.tokens import issue_refresh_token, refresh_tokens
from sermon_auth_shared.schemas.auth import RegisterRequest
from sermon_auth_shared.schemas.common import Role

PASSWORD = "correct-horse-42"


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class TestLogin:
    async def test_success(self, session, make_user):
        user = await make_user(session, "pastor@example.com")
        pair = await login("Pastor@Example.com ", PASSWORD, session)

        claims = validate_access_token(pair.access_token)
        assert claims.user_id == user.id
        assert claims.email == "pastor@example.com"
        assert pair.refresh_token
        assert pair.expires_in == 3600
        assert user.last_login_at is not None

    async def test_wrong_password_and_unknown_email_look_the_same(self, session, make_user):
        await make_user(session, "pastor@example.com")
        with pytest.raises(InvalidCredentials) as wrong:
            await login("pastor@example.com", "wrong-password", session)
        with pytest.raises(InvalidCredentials) as unknown:
            await login("nobody@example.com", PASSWORD, session)
        assert wrong.value.to_dict() == unknown.value.to_dict()

    async def test_user_without_password_cannot_log_in(self, session, make_user):
        await make_user(session, "invitee@example.com", password=None)
        with pytest.raises(InvalidCredentials):
            await login("invitee@example.com", PASSWORD, session)

    async def test_inactive_account(self, session, make_user):
        await make_user(session, "gone@example.com", is_active=False)
        with pytest.raises(AccountInactive):
            await login("gone@example.com", PASSWORD, session)

    async def test_inactive_account_with_wrong_password_is_invalid_credentials(
        self, session, make_user
    ):
        await make_user(session, "gone@example.com", is_active=False)
        with pytest.raises(InvalidCredentials):
            await login("gone@example.com", "wrong-password", session)

    async def test_unverified_email_allowed_by_default(self, session, make_user):
        await make_user(session, "new@example.com", is_email_verified=False)
        assert await login("new@example.com", PASSWORD, session)

    async def test_unverified_email_rejected_when_required(self, session, make_user):
        await make_user(session, "new@example.com", is_email_verified=False)
        with patch.object(get_settings(), "require_verified_email", True):
            with pytest.raises(EmailNotVerified):
                await login("new@example.com", PASSWORD, session)

    async def test_scoped_to_requested_organization(
        self, session, make_user, make_org, make_membership
    ):
        user = await make_user(session)
        first = await make_org(session, "first")
        second = await make_org(session, "second")
        await make_membership(session, user, first, Role.ORGANIZATION_USER)
        await make_membership(session, user, second, Role.ORGANIZATION_ADMIN)

        pair = await login(user.email, PASSWORD, session, organization_id=second.id)
        claims = validate_access_token(pair.access_token)
        assert claims.organization_id == second.id
        assert claims.role == Role.ORGANIZATION_ADMIN.value

    async def test_outdated_hash_is_upgraded(self, session, make_user):
        user = await make_user(session, password=None)
        user.password_hash = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=5)).decode()
        session.add(user)
        await session.flush()

        await login(user.email, PASSWORD, session)
        assert bcrypt.checkpw(PASSWORD.encode(), user.password_hash.encode())
        assert user.password_hash.startswith("$2b$04$")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def _register(email="new@example.com", password="long-enough-1") -> RegisterRequest:
    return RegisterRequest(email=email, password=password, first_name="Ruth", last_name="Moab")


class TestRegister:
    async def test_register_creates_unverified_user(self, session):
        user = await register_user(_register("New@Example.com"), session)
        assert user.email == "new@example.com"
        assert user.is_active
        assert not user.is_email_verified
        assert user.email_verification_token
        assert verify_password("long-enough-1", user.password_hash)

    async def test_duplicate_email(self, session, make_user):
        await make_user(session, "taken@example.com")
        with pytest.raises(EmailAlreadyRegistered):
            await register_user(_register("TAKEN@example.com"), session)

    async def test_weak_password(self, session):
        with pytest.raises(WeakPassword) as exc_info:
            await register_user(_register(password="short"), session)
        assert exc_info.value.problems


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

class TestPasswordReset:
    async def test_unknown_email_is_silent(self, session, notifier):
        await request_password_reset("nobody@example.com", session, notifier)
        assert notifier.sent == []

    async def test_inactive_user_gets_nothing(self, session, notifier, make_user):
        await make_user(session, "gone@example.com", is_active=False)
        await request_password_reset("gone@example.com", session, notifier)
        assert notifier.sent == []

    async def test_reset_sets_password_and_revokes_sessions(self, session, notifier, make_user):
        user = await make_user(session, "pastor@example.com")
        refresh = await issue_refresh_token(user, session)

        await request_password_reset("pastor@example.com", session, notifier)
        (token,) = notifier.tokens("password_reset")

        await reset_password(token, "brand-new-pass-9", session)
        assert await login("pastor@example.com", "brand-new-pass-9", session)
        with pytest.raises(InvalidCredentials):
            await login("pastor@example.com", PASSWORD, session)
        with pytest.raises(InvalidRefreshToken):
            await refresh_tokens(None, refresh, session)

    async def test_reset_token_is_single_use(self, session, notifier, make_user):
        await make_user(session, "pastor@example.com")
        await request_password_reset("pastor@example.com", session, notifier)
        (token,) = notifier.tokens("password_reset")

        await reset_password(token, "brand-new-pass-9", session)
        with pytest.raises(PasswordResetTokenInvalid):
            await reset_password(token, "another-pass-10", session)

    async def test_expired_reset_token(self, session, make_user):
        user = await make_user(session)
        user.password_reset_token = "stale-reset"
        user.password_reset_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        session.add(user)
        await session.flush()

        with pytest.raises(PasswordResetTokenInvalid):
            await reset_password("stale-reset", "brand-new-pass-9", session)

    async def test_weak_new_password_keeps_token(self, session, notifier, make_user):
        await make_user(session, "pastor@example.com")
        await request_password_reset("pastor@example.com", session, notifier)
        (token,) = notifier.tokens("password_reset")

        with pytest.raises(WeakPassword):
            await reset_password(token, "short", session)
        assert await reset_password(token, "brand-new-pass-9", session)

    async def test_send_failure_does_not_raise(self, session, notifier, make_user):
        await make_user(session, "pastor@example.com")
        notifier.fail = "raise"
        await request_password_reset("pastor@example.com", session, notifier)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------

class TestEmailVerification:
    async def test_verify(self, session, notifier):
        user = await register_user(_register(), session)
        assert await request_email_verification(user, session, notifier)
        (token,) = notifier.tokens("email_verification")
        assert token == user.email_verification_token

        verified = await verify_email(token, session)
        assert verified.is_email_verified
        assert verified.email_verification_token is None

        with pytest.raises(EmailVerificationTokenInvalid):
            await verify_email(token, session)

    async def test_resend_reuses_live_token(self, session, notifier):
        user = await register_user(_register(), session)
        await request_email_verification(user, session, notifier)
        await request_email_verification(user, session, notifier)
        first, second = notifier.tokens("email_verification")
        assert first == second

    async def test_verified_user_gets_nothing(self, session, notifier, make_user):
        user = await make_user(session)
        assert not await request_email_verification(user, session, notifier)
        assert notifier.sent == []

    async def test_expired_verification_token(self, session, make_user):
        user = await make_user(session, is_email_verified=False)
        user.email_verification_token = "stale-verify"
        user.email_verification_expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        session.add(user)
        await session.flush()

        with pytest.raises(EmailVerificationTokenInvalid):
            await verify_email("stale-verify", session)


# ---------------------------------------------------------------------------
# Password change
# ---------------------------------------------------------------------------

class TestChangePassword:
    async def test_change(self, session, make_user):
        user = await make_user(session)
        refresh = await issue_refresh_token(user, session)

        await change_password(user.id, PASSWORD, "brand-new-pass-9", session)
        refreshed = await session.get(User, user.id)
        assert verify_password("brand-new-pass-9", refreshed.password_hash)
        with pytest.raises(InvalidRefreshToken):
            await refresh_tokens(None, refresh, session)

    async def test_wrong_current_password(self, session, make_user):
        user = await make_user(session)
        with pytest.raises(InvalidCredentials):
            await change_password(user.id, "not-it", "brand-new-pass-9", session)

    async def test_weak_new_password(self, session, make_user):
        user = await make_user(session)
        with pytest.raises(WeakPassword):
            await change_password(user.id, PASSWORD, "short", session)
