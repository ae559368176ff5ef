"""
Role and permission catalog service: seeding, lookups and custom-role CRUD.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamgate.core.clock import Clock, SystemClock
from teamgate.core.errors import (
    FixedRoleCatalogError,
    PermissionNotFoundError,
    RoleInUseError,
    RoleNameTakenError,
    RoleNotFoundError,
    SystemRoleDeleteError,
    SystemRoleImmutableError,
)
from teamgate.core.rbac.catalogs import RbacCatalog
from teamgate.models.invitation import Invitation
from teamgate.models.membership import Membership
from teamgate.models.role import Permission, Role, RolePermission
from teamgate_shared.schemas.common import InvitationStatus, RbacMode

log = structlog.get_logger()


async def sync_catalog(session: AsyncSession, catalog: RbacCatalog) -> None:
    """Insert missing permissions, system roles and system grants.

    Idempotent; custom roles and existing rows are left alone.
    """
    existing_keys = set((await session.execute(select(Permission.key))).scalars().all())
    for perm in catalog.permissions:
        if perm.key not in existing_keys:
            session.add(Permission(id=perm.id, key=perm.key, description=perm.description))

    existing_roles = set((await session.execute(select(Role.id))).scalars().all())
    for role in catalog.roles:
        if role.id not in existing_roles:
            session.add(
                Role(id=role.id, name=role.name, description=role.description, is_system=True)
            )
    await session.flush()

    rows = await session.execute(select(RolePermission.role_id, RolePermission.permission_id))
    existing_grants = {tuple(row) for row in rows.all()}
    added = 0
    for role in catalog.roles:
        for key in catalog.grants_for(role.id):
            pair = (role.id, catalog_permission_id(catalog, key))
            if pair not in existing_grants:
                session.add(RolePermission(role_id=pair[0], permission_id=pair[1]))
                added += 1
    await session.flush()

    log.info("catalog.synced", mode=catalog.mode.value, grants_added=added)


def catalog_permission_id(catalog: RbacCatalog, key: str) -> uuid.UUID:
    for perm in catalog.permissions:
        if perm.key == key:
            return perm.id
    raise PermissionNotFoundError(f"Unknown permission: {key}")


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

async def list_permissions(session: AsyncSession) -> list[Permission]:
    result = await session.execute(select(Permission).order_by(Permission.key))
    return list(result.scalars().all())


async def list_permissions_by_prefix(session: AsyncSession, prefix: str) -> list[Permission]:
    """List permissions in a category, e.g. ``"workspace."``."""
    result = await session.execute(
        select(Permission)
        .where(Permission.key.startswith(prefix, autoescape=True))
        .order_by(Permission.key)
    )
    return list(result.scalars().all())


async def get_permission(session: AsyncSession, permission_id: uuid.UUID) -> Permission:
    perm = await session.get(Permission, permission_id)
    if perm is None:
        raise PermissionNotFoundError()
    return perm


async def get_permission_by_key(session: AsyncSession, key: str) -> Permission:
    result = await session.execute(select(Permission).where(Permission.key == key))
    perm = result.scalar_one_or_none()
    if perm is None:
        raise PermissionNotFoundError(f"Unknown permission: {key}")
    return perm


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

async def list_roles(session: AsyncSession) -> list[Role]:
    """System roles first, then alphabetical."""
    result = await session.execute(select(Role).order_by(Role.is_system.desc(), Role.name))
    return list(result.scalars().all())


async def get_role(session: AsyncSession, role_id: uuid.UUID) -> Role:
    role = await session.get(Role, role_id)
    if role is None:
        raise RoleNotFoundError()
    return role


async def get_role_by_name(session: AsyncSession, name: str) -> Role:
    result = await session.execute(select(Role).where(Role.name == name))
    role = result.scalar_one_or_none()
    if role is None:
        raise RoleNotFoundError(f"Role not found: {name}")
    return role


async def get_role_permissions(session: AsyncSession, role_id: uuid.UUID) -> list[str]:
    await get_role(session, role_id)
    result = await session.execute(
        select(Permission.key)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role_id)
        .order_by(Permission.key)
    )
    return list(result.scalars().all())


async def role_has_permission(session: AsyncSession, role_id: uuid.UUID, key: str) -> bool:
    result = await session.execute(
        select(func.count())
        .select_from(RolePermission)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .where(RolePermission.role_id == role_id, Permission.key == key)
    )
    return result.scalar_one() > 0


async def create_role(
    session: AsyncSession,
    catalog: RbacCatalog,
    name: str,
    description: Optional[str] = None,
    permissions: Optional[Iterable[str]] = None,
) -> Role:
    """Create a custom (non-system) role."""
    if catalog.mode is RbacMode.FIXED:
        raise FixedRoleCatalogError()

    role = Role(name=name.strip(), description=description, is_system=False)
    session.add(role)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise RoleNameTakenError() from exc

    if permissions:
        await _replace_grants(session, role.id, permissions)

    log.info("role.created", role_id=str(role.id), name=role.name)
    return role


async def update_role(
    session: AsyncSession,
    role_id: uuid.UUID,
    name: Optional[str] = None,
    description: Optional[str] = None,
    *,
    clock: Optional[Clock] = None,
) -> Role:
    """Partial update of a custom role; omitted fields keep their value."""
    role = await get_role(session, role_id)
    if role.is_system:
        raise SystemRoleImmutableError()

    if name is not None:
        role.name = name.strip()
    if description is not None:
        role.description = description
    role.updated_at = (clock or SystemClock()).now()
    session.add(role)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise RoleNameTakenError() from exc

    log.info("role.updated", role_id=str(role.id))
    return role


async def set_role_permissions(
    session: AsyncSession, role_id: uuid.UUID, keys: Iterable[str]
) -> list[str]:
    """Replace the grants of a custom role."""
    role = await get_role(session, role_id)
    if role.is_system:
        raise SystemRoleImmutableError()
    granted = await _replace_grants(session, role_id, keys)
    log.info("role.permissions_set", role_id=str(role_id), count=len(granted))
    return granted


async def delete_role(session: AsyncSession, role_id: uuid.UUID) -> None:
    """Delete a custom role. Blocked while members or pending invitations use it."""
    role = await get_role(session, role_id)
    if role.is_system:
        raise SystemRoleDeleteError()

    members = await session.execute(
        select(func.count()).select_from(Membership).where(Membership.role_id == role_id)
    )
    pending = await session.execute(
        select(func.count())
        .select_from(Invitation)
        .where(
            Invitation.role_id == role_id,
            Invitation.status == InvitationStatus.PENDING.value,
        )
    )
    if members.scalar_one() or pending.scalar_one():
        raise RoleInUseError()

    # Terminal invitations may still reference the role
    await session.execute(
        delete(Invitation).where(
            Invitation.role_id == role_id,
            Invitation.status != InvitationStatus.PENDING.value,
        )
    )
    await session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
    await session.delete(role)
    await session.flush()

    log.info("role.deleted", role_id=str(role_id), name=role.name)


async def _replace_grants(
    session: AsyncSession, role_id: uuid.UUID, keys: Iterable[str]
) -> list[str]:
    wanted = sorted(set(keys))
    perms = []
    for key in wanted:
        perms.append(await get_permission_by_key(session, key))

    await session.execute(delete(RolePermission).where(RolePermission.role_id == role_id))
    for perm in perms:
        session.add(RolePermission(role_id=role_id, permission_id=perm.id))
    await session.flush()
    return wanted
