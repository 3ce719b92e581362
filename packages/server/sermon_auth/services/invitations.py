"""
Invitation lifecycle: invite a user into an organization, accept, cancel.

A membership row with an invitation token and no ``invitation_accepted_at``
is pending and grants nothing. Acceptance is claimed with a conditional
UPDATE on ``invitation_accepted_at IS NULL`` so exactly one caller wins.
The token stays on the row afterwards so replays are recognized.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.core.config import get_settings
from sermon_auth.core.credentials import (
    generate_opaque_token,
    hash_password_async,
    validate_password_strength,
)
from sermon_auth.core.errors import (
    AccountInactive,
    AlreadyMember,
    InvitationAlreadyAccepted,
    InvitationExpired,
    InvitationInvalid,
    OrganizationNotFound,
    UserLimitReached,
    UserNotFound,
)
from sermon_auth.core.logging import redact_email
from sermon_auth.models.base import ensure_utc
from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth.models.user import User
from sermon_auth.services.auth import get_user_by_email, normalize_email
from sermon_auth.services.notifications import NotificationSender, notify
from sermon_auth.services.tokens import TokenPair, issue_token_pair
from sermon_auth_shared.schemas.common import Role
from sermon_auth_shared.schemas.invitations import InviteUserRequest

log = structlog.get_logger()
settings = get_settings()

EMAIL_NOT_SENT_WARNING = "Invitation email could not be sent; share the invitation link manually"


@dataclass
class InvitationResult:
    email: str
    user_id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
    invitation_token: str
    email_sent: bool
    warnings: list[str] = field(default_factory=list)


@dataclass
class AcceptResult:
    organization: Organization
    user: User
    role: Role
    tokens: TokenPair


def invitation_expires_at(membership: Membership) -> datetime:
    """Fixed deadline measured from creation; extending an invite means re-issuing it."""
    return ensure_utc(membership.invitation_created_at) + timedelta(
        days=settings.invitation_expire_days
    )


# ---------------------------------------------------------------------------
# Invite
# ---------------------------------------------------------------------------

async def _count_seats(organization_id: uuid.UUID, session: AsyncSession) -> int:
    """Active members plus pending invitations."""
    result = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(
            Membership.organization_id == organization_id,
            or_(
                Membership.is_active == True,  # noqa: E712
                Membership.invitation_accepted_at.is_(None),
            ),
        )
    )
    return result.scalar_one()


async def _create_invitee(email: str, req: InviteUserRequest, session: AsyncSession) -> User:
    user = User(
        email=email,
        first_name=req.first_name,
        last_name=req.last_name,
        password_hash=None,
        is_email_verified=False,
        is_active=True,
    )
    try:
        async with session.begin_nested():
            session.add(user)
    except IntegrityError:
        # Another invite created the same user first.
        user = await get_user_by_email(email, session)
        if user is None:
            raise
    return user


async def invite_user(
    req: InviteUserRequest,
    organization_id: uuid.UUID,
    invited_by_user_id: uuid.UUID,
    session: AsyncSession,
    notifier: NotificationSender,
) -> InvitationResult:
    """Create a pending membership for ``req.email`` and send the invitation.

    The membership is committed before the email goes out; a failed send is
    reported through ``warnings`` and never undoes the invitation.
    """
    org = await session.get(Organization, organization_id)
    if org is None or not org.is_active:
        raise OrganizationNotFound()

    inviter = await session.get(User, invited_by_user_id)
    if inviter is None:
        raise UserNotFound("Inviting user not found")

    email = normalize_email(req.email)
    user = await get_user_by_email(email, session)
    if user is not None:
        existing = await session.get(Membership, (user.id, organization_id))
        if existing is not None:
            raise AlreadyMember()

    if org.max_users is not None and await _count_seats(organization_id, session) >= org.max_users:
        raise UserLimitReached()

    if user is None:
        user = await _create_invitee(email, req, session)

    token = generate_opaque_token()
    membership = Membership(
        user_id=user.id,
        organization_id=organization_id,
        role=req.role.value,
        is_active=False,
        invitation_token=token,
        invited_by_user_id=invited_by_user_id,
        invitation_created_at=datetime.now(timezone.utc),
    )
    try:
        async with session.begin_nested():
            session.add(membership)
    except IntegrityError:
        raise AlreadyMember()

    await session.commit()
    log.info(
        "invitation.created",
        org_id=str(organization_id),
        user_id=str(user.id),
        invited_by=str(invited_by_user_id),
        role=req.role.value,
    )

    sent = await notify(
        notifier.send_invitation_email(
            user.email,
            user.full_name,
            org.name,
            inviter.full_name or inviter.email,
            token,
            req.message,
        ),
        "invitation.email_failed",
        org_id=str(organization_id),
        email=redact_email(user.email),
    )
    return InvitationResult(
        email=user.email,
        user_id=user.id,
        organization_id=organization_id,
        role=req.role,
        invitation_token=token,
        email_sent=sent,
        warnings=[] if sent else [EMAIL_NOT_SENT_WARNING],
    )


# ---------------------------------------------------------------------------
# Accept
# ---------------------------------------------------------------------------

async def accept_invitation(
    token: str,
    new_password: str,
    session: AsyncSession,
    notifier: NotificationSender,
) -> AcceptResult:
    """Activate a pending membership, set the invitee's password and sign them in."""
    result = await session.execute(
        select(Membership)
        .where(Membership.invitation_token == token)
        .execution_options(populate_existing=True)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise InvitationInvalid()
    if membership.invitation_accepted_at is not None:
        raise InvitationAlreadyAccepted()

    now = datetime.now(timezone.utc)
    if membership.invitation_created_at is None or now > invitation_expires_at(membership):
        log.info(
            "invitation.expired",
            org_id=str(membership.organization_id),
            user_id=str(membership.user_id),
        )
        raise InvitationExpired()

    validate_password_strength(new_password)

    user = await session.get(User, membership.user_id)
    if user is None:
        raise InvitationInvalid()
    if not user.is_active:
        raise AccountInactive()
    org = await session.get(Organization, membership.organization_id)
    if org is None:
        raise InvitationInvalid()

    password_hash = await hash_password_async(new_password)

    claimed = await session.execute(
        update(Membership)
        .where(
            Membership.user_id == membership.user_id,
            Membership.organization_id == membership.organization_id,
            Membership.invitation_accepted_at.is_(None),
        )
        .values(is_active=True, invitation_accepted_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        raise InvitationAlreadyAccepted()

    user.password_hash = password_hash
    user.is_email_verified = True
    user.email_verification_token = None
    user.email_verification_expires_at = None
    session.add(user)
    await session.commit()

    log.info("invitation.accepted", org_id=str(org.id), user_id=str(user.id))

    tokens = await issue_token_pair(user, session, organization_id=org.id)

    await notify(
        notifier.send_welcome_email(user.email, user.full_name, org.name),
        "invitation.welcome_email_failed",
        org_id=str(org.id),
        user_id=str(user.id),
    )
    return AcceptResult(organization=org, user=user, role=Role(membership.role), tokens=tokens)


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------

async def cancel_invitation(
    organization_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> None:
    """Delete a still-pending membership row."""
    result = await session.execute(
        select(Membership).where(
            Membership.organization_id == organization_id,
            Membership.user_id == user_id,
            Membership.invitation_token.is_not(None),
            Membership.invitation_accepted_at.is_(None),
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise InvitationInvalid("No pending invitation for this user")

    await session.delete(membership)
    await session.flush()
    log.info("invitation.cancelled", org_id=str(organization_id), user_id=str(user_id))
