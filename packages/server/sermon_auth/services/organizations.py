"""
Organization service: bootstrap an org with its creator as administrator.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from sermon_auth.core.errors import OrganizationNotFound, OrganizationSlugTaken
from sermon_auth.models.membership import Membership
from sermon_auth.models.organization import Organization
from sermon_auth_shared.schemas.common import Role
from sermon_auth_shared.schemas.organizations import OrgCreateRequest

log = structlog.get_logger()


async def create_org(
    req: OrgCreateRequest,
    creator_id: uuid.UUID,
    session: AsyncSession,
) -> Organization:
    """Create an org and make the creator an active administrator."""
    existing = await session.execute(
        select(Organization).where(Organization.slug == req.slug)
    )
    if existing.scalar_one_or_none():
        raise OrganizationSlugTaken()

    org = Organization(
        name=req.name,
        slug=req.slug,
        is_active=True,
        max_users=req.max_users,
    )
    session.add(org)
    try:
        await session.flush()
    except IntegrityError:
        raise OrganizationSlugTaken()

    # Creator becomes admin
    membership = Membership(
        user_id=creator_id,
        organization_id=org.id,
        role=Role.ORGANIZATION_ADMIN.value,
        is_active=True,
        invitation_accepted_at=datetime.now(timezone.utc),
    )
    session.add(membership)
    await session.flush()

    log.info("org.created", org_id=str(org.id), slug=req.slug, creator=str(creator_id))
    return org


async def get_org(organization_id: uuid.UUID, session: AsyncSession) -> Organization:
    """Get an org by id; raises OrganizationNotFound if missing."""
    org = await session.get(Organization, organization_id)
    if org is None:
        raise OrganizationNotFound()
    return org
