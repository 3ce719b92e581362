"""
Organization-scoped authorization.

``authorize`` is a pure read of current state: the user row, the
organization row and the membership row are loaded on every call and never
cached. The role-to-capability mapping is a fixed lookup table.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth.models.user import User
from sermon_auth_shared.schemas.common import Capability, DenyReason, Role

log = structlog.get_logger()

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ORGANIZATION_ADMIN: frozenset(
        {
            Capability.ADMIN,
            Capability.MANAGE_USERS,
            Capability.MANAGE_TRANSCRIPTIONS,
            Capability.VIEW_TRANSCRIPTIONS,
            Capability.EXPORT_TRANSCRIPTIONS,
            Capability.MEMBER,
        }
    ),
    Role.ORGANIZATION_USER: frozenset(
        {
            Capability.MANAGE_TRANSCRIPTIONS,
            Capability.VIEW_TRANSCRIPTIONS,
            Capability.EXPORT_TRANSCRIPTIONS,
            Capability.MEMBER,
        }
    ),
    Role.READ_ONLY_USER: frozenset(
        {
            Capability.VIEW_TRANSCRIPTIONS,
            Capability.MEMBER,
        }
    ),
}


def capabilities_for(role: Role | str) -> frozenset[Capability]:
    try:
        return ROLE_CAPABILITIES[Role(role)]
    except ValueError:
        return frozenset()


def role_grants(role: Role | str, capability: Capability) -> bool:
    return capability in capabilities_for(role)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    membership: Optional[Membership] = None

    @classmethod
    def allow(cls, membership: Membership) -> "Decision":
        return cls(allowed=True, membership=membership)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


async def authorize(
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    capability: Capability,
    session: AsyncSession,
) -> Decision:
    """Decide whether ``user_id`` holds ``capability`` in ``organization_id`` right now."""
    user = await session.get(User, user_id, populate_existing=True)
    if user is None or not user.is_active:
        return _denied(DenyReason.USER_INACTIVE, user_id, organization_id, capability)

    result = await session.execute(
        select(Membership)
        .where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
        .execution_options(populate_existing=True)
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        return _denied(DenyReason.NOT_A_MEMBER, user_id, organization_id, capability)

    org = await session.get(Organization, organization_id, populate_existing=True)
    if org is None:
        return _denied(DenyReason.NOT_A_MEMBER, user_id, organization_id, capability)
    if not org.is_active:
        return _denied(DenyReason.ORGANIZATION_INACTIVE, user_id, organization_id, capability)

    if not membership.is_active or membership.is_pending:
        return _denied(DenyReason.MEMBERSHIP_INACTIVE, user_id, organization_id, capability)

    if not role_grants(membership.role, capability):
        return _denied(DenyReason.INSUFFICIENT_PERMISSION, user_id, organization_id, capability)

    return Decision.allow(membership)


def _denied(
    reason: DenyReason,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    capability: Capability,
) -> Decision:
    log.info(
        "authz.denied",
        user_id=str(user_id),
        org_id=str(organization_id),
        capability=capability.value,
        reason=reason.value,
    )
    return Decision.deny(reason)
