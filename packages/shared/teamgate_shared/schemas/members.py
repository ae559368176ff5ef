"""Workspace membership schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class MemberAddRequest(BaseModel):
    """Add a principal to a workspace directly (no invitation)."""
    principal_id: uuid.UUID
    role_id: uuid.UUID
    permissions: Optional[List[str]] = None


class MemberRoleUpdateRequest(BaseModel):
    role_id: uuid.UUID


class MemberPermissionsUpdateRequest(BaseModel):
    """Replace the explicit permission overlay of a member."""
    permissions: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    """A membership row joined with its role."""
    id: uuid.UUID
    workspace_id: uuid.UUID
    principal_id: uuid.UUID
    role_id: uuid.UUID
    role_name: str
    invited_by: Optional[uuid.UUID] = None
    permissions: List[str] = Field(default_factory=list)
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: List[MemberResponse]


class EffectivePermissionsResponse(BaseModel):
    """The caller's resolved permissions in a workspace."""
    workspace_id: uuid.UUID
    principal_id: uuid.UUID
    role_id: Optional[uuid.UUID] = None
    role_name: Optional[str] = None
    is_admin: bool = False
    permissions: List[str]
