"""
API v1 Router

Workspace-scoped endpoints are prefixed with /workspaces/{workspaceId}.
"""

from fastapi import APIRouter

from . import invitations, members, roles, workspaces

router = APIRouter()

router.include_router(roles.router, tags=["Roles"])
router.include_router(workspaces.router, prefix="/workspaces", tags=["Workspaces"])
router.include_router(
    members.router, prefix="/workspaces/{workspaceId}/members", tags=["Members"]
)
router.include_router(
    invitations.router_scoped,
    prefix="/workspaces/{workspaceId}/invitations",
    tags=["Invitations"],
)
router.include_router(
    invitations.router_public, prefix="/workspace-invitations", tags=["Invitations"]
)


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/roles",
            "/permissions",
            "/workspaces",
            "/workspaces/{workspaceId}/members",
            "/workspaces/{workspaceId}/invitations",
            "/workspace-invitations/{token}",
        ],
    }
