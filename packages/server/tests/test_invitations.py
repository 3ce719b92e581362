"""
Tests for the invitation lifecycle.

Covers:
- Invite creates a pending membership (and the user when unknown)
- Duplicate invites, seat limits, inactive orgs
- Best-effort email delivery
- Accept: single use, expiry, password policy, concurrency
- Cancel
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from sermon_auth.core.credentials import verify_password
from sermon_auth.core.errors import (
    AlreadyMember,
    InvitationAlreadyAccepted,
    InvitationExpired,
    InvitationInvalid,
    OrganizationNotFound,
    UserLimitReached,
    UserNotFound,
    WeakPassword,
)
from sermon_auth.core.permissions import authorize
from sermon_auth.core.tokens import validate_access_token
from sermon_auth.models.membership import Membership
from sermon_auth.models.user import User
from sermon_auth.services.auth import login
from sermon_auth.services.invitations import (
    accept_invitation,
    cancel_invitation,
    invite_user,
)
from sermon_auth_shared.schemas.common import Capability, DenyReason, Role
from sermon_auth_shared.schemas.invitations import InviteUserRequest


def _invite(email="a@x.com", role=Role.ORGANIZATION_USER, **kwargs) -> InviteUserRequest:
    return InviteUserRequest(email=email, first_name="Ada", last_name="Lovelace", role=role, **kwargs)


@pytest.fixture
async def org_with_admin(session, make_user, make_org, make_membership):
    admin = await make_user(session, "admin@x.com")
    org = await make_org(session)
    await make_membership(session, admin, org, Role.ORGANIZATION_ADMIN)
    await session.commit()
    return org, admin


async def _membership(session, user_id, org_id) -> Membership:
    result = await session.execute(
        select(Membership)
        .where(Membership.user_id == user_id, Membership.organization_id == org_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Invite
# ---------------------------------------------------------------------------

class TestInvite:
    async def test_creates_user_and_pending_membership(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        result = await invite_user(_invite("New.Person@X.com"), org.id, admin.id, session, notifier)

        assert result.email == "new.person@x.com"
        assert result.email_sent
        assert result.warnings == []

        user = await session.get(User, result.user_id)
        assert user.password_hash is None
        assert not user.is_email_verified

        membership = await _membership(session, user.id, org.id)
        assert membership.is_pending
        assert not membership.is_active
        assert membership.invitation_token == result.invitation_token
        assert membership.invited_by_user_id == admin.id
        assert notifier.tokens("invitation") == [result.invitation_token]

    async def test_existing_user_is_reused(self, session, notifier, org_with_admin, make_user):
        org, admin = org_with_admin
        existing = await make_user(session, "a@x.com")
        await session.commit()

        result = await invite_user(_invite("A@X.com"), org.id, admin.id, session, notifier)
        assert result.user_id == existing.id

    async def test_second_invite_while_pending_is_already_member(
        self, session, notifier, org_with_admin
    ):
        org, admin = org_with_admin
        await invite_user(_invite("a@x.com"), org.id, admin.id, session, notifier)
        with pytest.raises(AlreadyMember):
            await invite_user(_invite("a@x.com"), org.id, admin.id, session, notifier)

    async def test_inviting_active_member_is_already_member(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        with pytest.raises(AlreadyMember):
            await invite_user(_invite("admin@x.com"), org.id, admin.id, session, notifier)

    async def test_unknown_or_inactive_org(self, session, notifier, org_with_admin, make_org):
        _, admin = org_with_admin
        with pytest.raises(OrganizationNotFound):
            await invite_user(_invite(), uuid.uuid4(), admin.id, session, notifier)

        closed = await make_org(session, "closed", is_active=False)
        with pytest.raises(OrganizationNotFound):
            await invite_user(_invite(), closed.id, admin.id, session, notifier)

    async def test_unknown_inviter(self, session, notifier, org_with_admin):
        org, _ = org_with_admin
        with pytest.raises(UserNotFound):
            await invite_user(_invite(), org.id, uuid.uuid4(), session, notifier)

    async def test_seat_limit_counts_pending(self, session, notifier, make_user, make_org, make_membership):
        admin = await make_user(session, "admin@x.com")
        org = await make_org(session, max_users=2)
        await make_membership(session, admin, org, Role.ORGANIZATION_ADMIN)
        await session.commit()

        await invite_user(_invite("one@x.com"), org.id, admin.id, session, notifier)
        with pytest.raises(UserLimitReached):
            await invite_user(_invite("two@x.com"), org.id, admin.id, session, notifier)

    async def test_email_failure_is_a_warning(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        notifier.fail = "raise"
        result = await invite_user(_invite(), org.id, admin.id, session, notifier)
        assert not result.email_sent
        assert len(result.warnings) == 1
        # the invitation survives the failed send
        assert (await _membership(session, result.user_id, org.id)).is_pending

    async def test_email_returning_false_is_a_warning(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        notifier.fail = "false"
        result = await invite_user(_invite(), org.id, admin.id, session, notifier)
        assert not result.email_sent
        assert result.warnings


# ---------------------------------------------------------------------------
# Accept
# ---------------------------------------------------------------------------

class TestAccept:
    async def test_accept_activates_membership_and_signs_in(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        invited = await invite_user(_invite(), org.id, admin.id, session, notifier)

        result = await accept_invitation(invited.invitation_token, "new-password-1", session, notifier)
        assert result.organization.id == org.id
        assert result.role == Role.ORGANIZATION_USER

        claims = validate_access_token(result.tokens.access_token)
        assert claims.user_id == invited.user_id
        assert claims.organization_id == org.id

        user = await session.get(User, invited.user_id, populate_existing=True)
        assert user.is_email_verified
        assert verify_password("new-password-1", user.password_hash)

        membership = await _membership(session, invited.user_id, org.id)
        assert membership.is_active
        assert membership.invitation_accepted_at is not None
        assert membership.invitation_token == invited.invitation_token
        assert notifier.sent[-1][0] == "welcome"

        # the password set on acceptance works for login
        assert await login("a@x.com", "new-password-1", session)

    async def test_second_accept_is_rejected(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        invited = await invite_user(_invite(), org.id, admin.id, session, notifier)
        await accept_invitation(invited.invitation_token, "new-password-1", session, notifier)

        with pytest.raises(InvitationAlreadyAccepted):
            await accept_invitation(invited.invitation_token, "other-password-2", session, notifier)

    async def test_unknown_token(self, session, notifier):
        with pytest.raises(InvitationInvalid):
            await accept_invitation("nope", "new-password-1", session, notifier)

    async def test_expired_invitation(self, session, notifier, make_user, make_org, make_membership):
        user = await make_user(session, "late@x.com", password=None)
        org = await make_org(session)
        membership = await make_membership(
            session,
            user,
            org,
            pending=True,
            invited_at=datetime.now(timezone.utc) - timedelta(days=7, minutes=1),
        )
        await session.commit()

        with pytest.raises(InvitationExpired):
            await accept_invitation(membership.invitation_token, "new-password-1", session, notifier)

    async def test_invitation_just_inside_window(self, session, notifier, make_user, make_org, make_membership):
        user = await make_user(session, "ontime@x.com", password=None)
        org = await make_org(session)
        membership = await make_membership(
            session,
            user,
            org,
            pending=True,
            invited_at=datetime.now(timezone.utc) - timedelta(days=6, hours=23),
        )
        await session.commit()

        assert await accept_invitation(membership.invitation_token, "new-password-1", session, notifier)

    async def test_weak_password_leaves_invitation_pending(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        invited = await invite_user(_invite(), org.id, admin.id, session, notifier)

        with pytest.raises(WeakPassword):
            await accept_invitation(invited.invitation_token, "short", session, notifier)
        assert (await _membership(session, invited.user_id, org.id)).is_pending

    async def test_welcome_email_failure_does_not_fail_accept(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        invited = await invite_user(_invite(), org.id, admin.id, session, notifier)
        notifier.fail = "raise"
        result = await accept_invitation(invited.invitation_token, "new-password-1", session, notifier)
        assert result.tokens.refresh_token

    async def test_concurrent_accepts_have_one_winner(self, session_factory, notifier, make_user, make_org, make_membership):
        async with session_factory() as session:
            user = await make_user(session, "a@x.com", password=None)
            org = await make_org(session)
            membership = await make_membership(session, user, org, pending=True)
            token = membership.invitation_token
            await session.commit()

        async def attempt(password):
            async with session_factory() as session:
                try:
                    result = await accept_invitation(token, password, session, notifier)
                    await session.commit()
                    return result
                except InvitationAlreadyAccepted as exc:
                    await session.rollback()
                    return exc

        results = await asyncio.gather(
            attempt("first-password-1"), attempt("second-password-2"), attempt("third-password-3")
        )
        assert sum(1 for r in results if isinstance(r, InvitationAlreadyAccepted)) == 2


# ---------------------------------------------------------------------------
# End-to-end authorization around acceptance
# ---------------------------------------------------------------------------

class TestInvitationAuthorization:
    async def test_pending_then_accepted_organization_user(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        invited = await invite_user(_invite("a@x.com"), org.id, admin.id, session, notifier)

        before = await authorize(invited.user_id, org.id, Capability.MANAGE_USERS, session)
        assert before.reason == DenyReason.MEMBERSHIP_INACTIVE
        member = await authorize(invited.user_id, org.id, Capability.MEMBER, session)
        assert member.reason == DenyReason.MEMBERSHIP_INACTIVE

        await accept_invitation(invited.invitation_token, "new-password-1", session, notifier)

        after = await authorize(invited.user_id, org.id, Capability.MANAGE_USERS, session)
        assert after.reason == DenyReason.INSUFFICIENT_PERMISSION
        assert (await authorize(invited.user_id, org.id, Capability.VIEW_TRANSCRIPTIONS, session)).allowed


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------

class TestCancel:
    async def test_cancel_pending(self, session, notifier, org_with_admin):
        org, admin = org_with_admin
        invited = await invite_user(_invite(), org.id, admin.id, session, notifier)

        await cancel_invitation(org.id, invited.user_id, session)
        assert await _membership(session, invited.user_id, org.id) is None
        with pytest.raises(InvitationInvalid):
            await accept_invitation(invited.invitation_token, "new-password-1", session, notifier)

        # a cancelled invitation can be re-issued
        assert await invite_user(_invite(), org.id, admin.id, session, notifier)

    async def test_cannot_cancel_accepted_membership(self, session, org_with_admin):
        org, admin = org_with_admin
        with pytest.raises(InvitationInvalid):
            await cancel_invitation(org.id, admin.id, session)
