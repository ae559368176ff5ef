"""
Role and permission catalog (read-only).

GET /api/v1/roles                        - List roles (system first)
GET /api/v1/roles/{roleId}               - Get a role
GET /api/v1/roles/{roleId}/permissions   - Permission keys granted to a role
GET /api/v1/permissions[?category=]      - List permissions, optionally one category
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from teamgate.core.auth import get_auth_context, get_session
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services import roles as role_service
from teamgate_shared.schemas.roles import (
    PermissionListResponse,
    PermissionResponse,
    RoleListResponse,
    RolePermissionsResponse,
    RoleResponse,
)

router = APIRouter()


@router.get("/roles", response_model=RoleListResponse)
async def list_roles(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
):
    roles = await role_service.list_roles(session)
    return RoleListResponse(data=[RoleResponse.model_validate(r, from_attributes=True) for r in roles])


@router.get("/roles/{roleId}", response_model=RoleResponse)
async def get_role(
    roleId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
):
    role = await role_service.get_role(session, roleId)
    return RoleResponse.model_validate(role, from_attributes=True)


@router.get("/roles/{roleId}/permissions", response_model=RolePermissionsResponse)
async def get_role_permissions(
    roleId: uuid.UUID,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
):
    keys = await role_service.get_role_permissions(session, roleId)
    return RolePermissionsResponse(role_id=roleId, permissions=keys)


@router.get("/permissions", response_model=PermissionListResponse)
async def list_permissions(
    category: Optional[str] = Query(default=None, min_length=1, max_length=50),
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_session),
):
    """List permission keys; ``category=workspace`` lists ``workspace.*``."""
    if category:
        prefix = category if category.endswith(".") else f"{category}."
        perms = await role_service.list_permissions_by_prefix(session, prefix)
    else:
        perms = await role_service.list_permissions(session)
    return PermissionListResponse(
        data=[PermissionResponse.model_validate(p, from_attributes=True) for p in perms]
    )
