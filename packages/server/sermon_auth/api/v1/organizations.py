"""
Organization API endpoints.

POST   /api/v1/orgs                      Create a new org (creator becomes admin)
GET    /api/v1/orgs/{organization_id}    Get org details (any active member)
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sermon_auth.core.auth import AuthenticatedUser, get_current_user, require_capability
from sermon_auth.core.database import get_session
from sermon_auth.models.base import ensure_utc
from sermon_auth.models.organization import Organization
from sermon_auth.services import organizations as org_service
from sermon_auth_shared.schemas.common import Capability
from sermon_auth_shared.schemas.organizations import OrgCreateRequest, OrgResponse

log = structlog.get_logger()
router = APIRouter()


def _org_response(org: Organization) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        is_active=org.is_active,
        max_users=org.max_users,
        max_transcription_minutes=org.max_transcription_minutes,
        created_at=ensure_utc(org.created_at),
    )


@router.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes an administrator."""
    org = await org_service.create_org(body, auth.user_id, session)
    return _org_response(org)


@router.get("/orgs/{organization_id}", response_model=OrgResponse, tags=["Organizations"])
async def get_org(
    auth: AuthenticatedUser = Depends(require_capability(Capability.MEMBER)),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org(auth.org_id, session)
    return _org_response(org)
