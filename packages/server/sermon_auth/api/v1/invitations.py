"""
Invitation API endpoints (org-scoped, ManageUsers).

POST   /api/v1/orgs/{organization_id}/invitations             Invite a user by email
DELETE /api/v1/orgs/{organization_id}/invitations/{user_id}   Cancel a pending invitation
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from sermon_auth.core.auth import AuthenticatedUser, require_capability
from sermon_auth.core.config import get_settings
from sermon_auth.core.database import get_session
from sermon_auth.services import invitations as invitation_service
from sermon_auth.services.notifications import NotificationSender, get_notifier
from sermon_auth_shared.schemas.common import Capability
from sermon_auth_shared.schemas.invitations import InviteUserRequest, InviteUserResponse

settings = get_settings()
router = APIRouter()


@router.post("", response_model=InviteUserResponse, status_code=201, tags=["Invitations"])
async def invite_user(
    body: InviteUserRequest,
    auth: AuthenticatedUser = Depends(require_capability(Capability.MANAGE_USERS)),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSender = Depends(get_notifier),
):
    """Invite someone into the org. Email delivery problems come back as warnings."""
    result = await invitation_service.invite_user(
        body, auth.org_id, auth.user_id, session, notifier
    )
    return InviteUserResponse(
        email=result.email,
        user_id=result.user_id,
        organization_id=result.organization_id,
        role=result.role,
        email_sent=result.email_sent,
        warnings=result.warnings,
        invitation_token=result.invitation_token if settings.debug else None,
    )


@router.delete("/{user_id}", status_code=204, tags=["Invitations"])
async def cancel_invitation(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_capability(Capability.MANAGE_USERS)),
    session: AsyncSession = Depends(get_session),
):
    await invitation_service.cancel_invitation(auth.org_id, user_id, session)
    return Response(status_code=204)
