"""
Workspace endpoints.

GET    /api/v1/workspaces                 - Workspaces the caller belongs to
POST   /api/v1/workspaces                 - Create (caller becomes top-tier member)
GET    /api/v1/workspaces/{workspaceId}   - Get workspace
PATCH  /api/v1/workspaces/{workspaceId}   - Partial update
DELETE /api/v1/workspaces/{workspaceId}   - Delete with members and invitations
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from teamgate.core.auth import get_auth_context, get_services
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services.registry import Services
from teamgate_shared.schemas.workspaces import (
    WorkspaceCreateRequest,
    WorkspaceListItem,
    WorkspaceListResponse,
    WorkspaceResponse,
    WorkspaceUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=WorkspaceListResponse)
async def list_workspaces(
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    items = await services.workspaces.list_workspaces_for_principal(auth.principal_id)
    return WorkspaceListResponse(data=[WorkspaceListItem(**item) for item in items])


@router.post("", response_model=WorkspaceResponse, status_code=201)
async def create_workspace(
    body: WorkspaceCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    workspace = await services.workspaces.create_workspace(
        body.name, body.description, creator=auth
    )
    return WorkspaceResponse.model_validate(workspace, from_attributes=True)


@router.get("/{workspaceId}", response_model=WorkspaceResponse)
async def get_workspace(
    workspaceId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    workspace = await services.workspaces.get_workspace(workspaceId, actor=auth)
    return WorkspaceResponse.model_validate(workspace, from_attributes=True)


@router.patch("/{workspaceId}", response_model=WorkspaceResponse)
async def update_workspace(
    workspaceId: uuid.UUID,
    body: WorkspaceUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    workspace = await services.workspaces.update_workspace(
        workspaceId, name=body.name, description=body.description, actor=auth
    )
    return WorkspaceResponse.model_validate(workspace, from_attributes=True)


@router.delete("/{workspaceId}", status_code=204)
async def delete_workspace(
    workspaceId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    await services.workspaces.delete_workspace(workspaceId, actor=auth)
