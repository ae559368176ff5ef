"""
Invitation schemas.

Covers: invitation create request, admin listing, the public token preview
and the accept result.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr

from .common import InvitationStatus


class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role_id: Optional[uuid.UUID] = None  # defaults to Member


class InvitationResponse(BaseModel):
    """Invitation as seen by workspace admins."""
    id: uuid.UUID
    workspace_id: uuid.UUID
    email: str
    role_id: uuid.UUID
    role_name: str
    status: InvitationStatus
    invited_by: Optional[uuid.UUID] = None
    expires_at: datetime
    created_at: datetime


class InvitationCreatedResponse(InvitationResponse):
    """Returned once on create; carries the token for out-of-band delivery."""
    token: str
    accept_url: str


class InvitationListResponse(BaseModel):
    data: List[InvitationResponse]


class InvitationPreviewResponse(BaseModel):
    """Public view of an invitation, looked up by token."""
    id: uuid.UUID
    workspace_id: uuid.UUID
    workspace_name: str
    role_id: uuid.UUID
    role_name: str
    status: InvitationStatus
    expires_at: datetime


class InvitationAcceptResponse(BaseModel):
    workspace_id: uuid.UUID
    role_id: uuid.UUID
    role_name: str
