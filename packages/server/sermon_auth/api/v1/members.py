"""
Member administration endpoints.

GET    /api/v1/orgs/{organization_id}/members                    List members (Member)
PATCH  /api/v1/orgs/{organization_id}/members/{user_id}/role     Change role (ManageUsers)
PATCH  /api/v1/orgs/{organization_id}/members/{user_id}/status   Activate/deactivate (ManageUsers)
DELETE /api/v1/orgs/{organization_id}/members/{user_id}          Remove member (ManageUsers)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from sermon_auth.core.auth import AuthenticatedUser, require_capability
from sermon_auth.core.database import get_session
from sermon_auth.services import memberships as member_service
from sermon_auth_shared.schemas.common import Capability, MessageResponse
from sermon_auth_shared.schemas.organizations import (
    MemberListResponse,
    MemberResponse,
    MemberRoleUpdateRequest,
    MemberStatusUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=MemberListResponse, tags=["Members"])
async def list_members(
    auth: AuthenticatedUser = Depends(require_capability(Capability.MEMBER)),
    session: AsyncSession = Depends(get_session),
):
    """List all members of the org, including pending invitations."""
    items = await member_service.list_members(auth.org_id, session)
    return MemberListResponse(data=[MemberResponse(**item) for item in items])


@router.patch("/{user_id}/role", response_model=MessageResponse, tags=["Members"])
async def update_role(
    user_id: uuid.UUID,
    body: MemberRoleUpdateRequest,
    auth: AuthenticatedUser = Depends(require_capability(Capability.MANAGE_USERS)),
    session: AsyncSession = Depends(get_session),
):
    await member_service.update_member_role(auth.org_id, user_id, body.role, session)
    return MessageResponse(message=f"Role updated to {body.role.value}")


@router.patch("/{user_id}/status", response_model=MessageResponse, tags=["Members"])
async def update_status(
    user_id: uuid.UUID,
    body: MemberStatusUpdateRequest,
    auth: AuthenticatedUser = Depends(require_capability(Capability.MANAGE_USERS)),
    session: AsyncSession = Depends(get_session),
):
    await member_service.set_member_active(auth.org_id, user_id, body.is_active, session)
    return MessageResponse(message="Member activated" if body.is_active else "Member deactivated")


@router.delete("/{user_id}", status_code=204, tags=["Members"])
async def remove_member(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_capability(Capability.MANAGE_USERS)),
    session: AsyncSession = Depends(get_session),
):
    await member_service.remove_member(auth.org_id, user_id, session)
    return Response(status_code=204)
