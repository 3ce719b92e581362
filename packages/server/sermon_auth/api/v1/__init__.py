"""
API v1 Router

Org-scoped endpoints are prefixed with /orgs/{organization_id}.
"""

from fastapi import APIRouter
from . import invitations, members, organizations

router = APIRouter()

# Organization routes (create, get)
router.include_router(organizations.router)

# Org-scoped resource routers
router.include_router(
    invitations.router, prefix="/orgs/{organization_id}/invitations", tags=["Invitations"]
)
router.include_router(members.router, prefix="/orgs/{organization_id}/members", tags=["Members"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/{organization_id}",
            "/orgs/{organization_id}/invitations",
            "/orgs/{organization_id}/members",
        ],
    }
