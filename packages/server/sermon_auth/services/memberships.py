"""
Membership service: member listing and administration within an organization.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.core.errors import LastAdminRequired, UserNotFound
from sermon_auth.models.base import ensure_utc
from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth.models.user import User
from sermon_auth.services.tokens import revoke_all_user_refresh_tokens
from sermon_auth_shared.schemas.common import Role

log = structlog.get_logger()


async def list_members(organization_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """List all memberships of an org (active, inactive and pending) with user info."""
    result = await session.execute(
        select(User, Membership)
        .join(Membership, Membership.user_id == User.id)
        .where(Membership.organization_id == organization_id)
        .order_by(Membership.created_at)
    )
    return [
        {
            "user_id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role": membership.role,
            "is_active": membership.is_active,
            "is_pending": membership.is_pending,
            "invited_by_user_id": membership.invited_by_user_id,
            "invitation_accepted_at": ensure_utc(membership.invitation_accepted_at),
            "created_at": ensure_utc(membership.created_at),
        }
        for user, membership in result.all()
    ]


async def list_user_organizations(user_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """List the active orgs a user is an active member of, with their role."""
    result = await session.execute(
        select(Organization, Membership)
        .join(Membership, Membership.organization_id == Organization.id)
        .where(
            Membership.user_id == user_id,
            Membership.is_active == True,  # noqa: E712
            Organization.is_active == True,  # noqa: E712
        )
        .order_by(Membership.created_at)
    )
    return [
        {
            "id": org.id,
            "name": org.name,
            "slug": org.slug,
            "role": membership.role,
            "joined_at": ensure_utc(membership.invitation_accepted_at or membership.created_at),
        }
        for org, membership in result.all()
    ]


def organization_lock_query(organization_id: uuid.UUID):
    return (
        select(Organization.id)
        .where(Organization.id == organization_id)
        .with_for_update()
    )


async def _lock_organization(organization_id: uuid.UUID, session: AsyncSession) -> None:
    """Serialize admin-affecting changes within one organization.

    Held until the transaction ends, so the admin count read afterwards cannot
    be invalidated by a concurrent demotion.
    """
    await session.execute(organization_lock_query(organization_id))


async def _get_membership(
    organization_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Membership:
    result = await session.execute(
        select(Membership)
        .where(
            Membership.organization_id == organization_id,
            Membership.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise UserNotFound("User not found in this organization")
    return membership


async def _ensure_other_admin(
    organization_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> None:
    """Raise LastAdminRequired unless another active admin remains."""
    result = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(
            Membership.organization_id == organization_id,
            Membership.user_id != user_id,
            Membership.role == Role.ORGANIZATION_ADMIN.value,
            Membership.is_active == True,  # noqa: E712
        )
    )
    if result.scalar_one() == 0:
        raise LastAdminRequired()


def _is_active_admin(membership: Membership) -> bool:
    return membership.is_active and membership.role == Role.ORGANIZATION_ADMIN.value


async def update_member_role(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    role: Role,
    session: AsyncSession,
) -> Membership:
    await _lock_organization(organization_id, session)
    membership = await _get_membership(organization_id, user_id, session)
    if _is_active_admin(membership) and role != Role.ORGANIZATION_ADMIN:
        await _ensure_other_admin(organization_id, user_id, session)

    old_role = membership.role
    membership.role = role.value
    session.add(membership)
    await session.flush()

    log.info(
        "member.role_changed",
        org_id=str(organization_id),
        user_id=str(user_id),
        old_role=old_role,
        new_role=role.value,
    )
    return membership


async def set_member_active(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    is_active: bool,
    session: AsyncSession,
) -> Membership:
    """Activate or deactivate an accepted membership. Pending invitations are left alone."""
    await _lock_organization(organization_id, session)
    membership = await _get_membership(organization_id, user_id, session)
    if membership.is_pending:
        raise UserNotFound("User has not accepted their invitation")
    if not is_active and _is_active_admin(membership):
        await _ensure_other_admin(organization_id, user_id, session)

    membership.is_active = is_active
    session.add(membership)
    await session.flush()

    log.info(
        "member.activated" if is_active else "member.deactivated",
        org_id=str(organization_id),
        user_id=str(user_id),
    )
    return membership


async def remove_member(
    organization_id: uuid.UUID,
    user_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    """Delete the membership row and revoke the removed user's refresh tokens."""
    await _lock_organization(organization_id, session)
    membership = await _get_membership(organization_id, user_id, session)
    if _is_active_admin(membership):
        await _ensure_other_admin(organization_id, user_id, session)

    await session.delete(membership)
    await session.flush()
    await revoke_all_user_refresh_tokens(user_id, session)

    log.info("member.removed", org_id=str(organization_id), user_id=str(user_id))
