"""
Workspace membership endpoints.

GET    /api/v1/workspaces/{workspaceId}/members                             - List members
POST   /api/v1/workspaces/{workspaceId}/members                             - Add a member directly
GET    /api/v1/workspaces/{workspaceId}/members/me/permissions              - Caller's effective permissions
PATCH  /api/v1/workspaces/{workspaceId}/members/{principalId}/role          - Change role
PUT    /api/v1/workspaces/{workspaceId}/members/{principalId}/permissions   - Replace overlay (fixed roles)
DELETE /api/v1/workspaces/{workspaceId}/members/{principalId}               - Remove member
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from teamgate.core.auth import get_auth_context, get_services
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services.registry import Services
from teamgate_shared.schemas.members import (
    EffectivePermissionsResponse,
    MemberAddRequest,
    MemberListResponse,
    MemberPermissionsUpdateRequest,
    MemberResponse,
    MemberRoleUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=MemberListResponse)
async def list_members(
    workspaceId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    items = await services.memberships.list_members(workspaceId, actor=auth)
    return MemberListResponse(data=[MemberResponse(**item) for item in items])


@router.post("", response_model=MemberResponse, status_code=201)
async def add_member(
    workspaceId: uuid.UUID,
    body: MemberAddRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    info = await services.memberships.add_member(
        workspaceId,
        body.principal_id,
        body.role_id,
        permissions=body.permissions,
        actor=auth,
    )
    return MemberResponse(**info)


@router.get("/me/permissions", response_model=EffectivePermissionsResponse)
async def my_permissions(
    workspaceId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    info = await services.memberships.effective_permissions(auth.in_workspace(workspaceId))
    return EffectivePermissionsResponse(**info)


@router.patch("/{principalId}/role", response_model=MemberResponse)
async def update_member_role(
    workspaceId: uuid.UUID,
    principalId: uuid.UUID,
    body: MemberRoleUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    info = await services.memberships.update_member_role(
        workspaceId, principalId, body.role_id, actor=auth
    )
    return MemberResponse(**info)


@router.put("/{principalId}/permissions", response_model=MemberResponse)
async def set_member_permissions(
    workspaceId: uuid.UUID,
    principalId: uuid.UUID,
    body: MemberPermissionsUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    info = await services.memberships.set_member_permissions(
        workspaceId, principalId, body.permissions, actor=auth
    )
    return MemberResponse(**info)


@router.delete("/{principalId}", status_code=204)
async def remove_member(
    workspaceId: uuid.UUID,
    principalId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    await services.memberships.remove_member(workspaceId, principalId, actor=auth)
