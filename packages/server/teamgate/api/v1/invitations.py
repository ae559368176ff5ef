"""
Invitation endpoints.

POST   /api/v1/workspaces/{workspaceId}/invitations                  - Invite by email (admin)
GET    /api/v1/workspaces/{workspaceId}/invitations                  - List invitations (admin)
DELETE /api/v1/workspaces/{workspaceId}/invitations/{invitationId}   - Revoke (admin)
GET    /api/v1/workspace-invitations/{token}                         - Public preview
POST   /api/v1/workspace-invitations/{token}/accept                  - Accept as the caller
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from teamgate.core.auth import get_auth_context, get_services
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services.registry import Services
from teamgate_shared.schemas.invitations import (
    InvitationAcceptResponse,
    InvitationCreatedResponse,
    InvitationCreateRequest,
    InvitationListResponse,
    InvitationPreviewResponse,
    InvitationResponse,
)

router_scoped = APIRouter()
router_public = APIRouter()


@router_scoped.post("", response_model=InvitationCreatedResponse, status_code=201)
async def create_invitation(
    workspaceId: uuid.UUID,
    body: InvitationCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    info = await services.invitations.create_invitation(
        workspaceId, body.email, body.role_id, actor=auth
    )
    return InvitationCreatedResponse(**info)


@router_scoped.get("", response_model=InvitationListResponse)
async def list_invitations(
    workspaceId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    items = await services.invitations.list_invitations(workspaceId, actor=auth)
    return InvitationListResponse(data=[InvitationResponse(**item) for item in items])


@router_scoped.delete("/{invitationId}", response_model=InvitationResponse)
async def revoke_invitation(
    workspaceId: uuid.UUID,
    invitationId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    info = await services.invitations.revoke_invitation(workspaceId, invitationId, actor=auth)
    return InvitationResponse(**info)


@router_public.get("/{token}", response_model=InvitationPreviewResponse)
async def get_invitation(
    token: str,
    services: Services = Depends(get_services),
):
    """No authentication: the token itself is the capability."""
    info = await services.invitations.get_invitation_by_token(token)
    return InvitationPreviewResponse(**info)


@router_public.post("/{token}/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    token: str,
    auth: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    workspace_id, role = await services.invitations.accept_invitation(token, auth.principal_id)
    return InvitationAcceptResponse(workspace_id=workspace_id, role_id=role.id, role_name=role.name)
