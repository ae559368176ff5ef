"""Role and permission catalog schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class PermissionResponse(BaseModel):
    """A single permission key."""
    id: uuid.UUID
    key: str
    description: Optional[str] = None


class PermissionListResponse(BaseModel):
    data: List[PermissionResponse]


class RoleResponse(BaseModel):
    """A role as exposed by the catalog."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_system: bool
    created_at: datetime
    updated_at: datetime


class RoleListResponse(BaseModel):
    data: List[RoleResponse]


class RolePermissionsResponse(BaseModel):
    """Permission keys granted to a role."""
    role_id: uuid.UUID
    permissions: List[str]
