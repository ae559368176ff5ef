"""
Permission catalogs for the two deployment flavors.

``catalog``: system roles Owner/Admin/Member/Viewer plus custom roles, grants
stored in ``role_permissions``.

``fixed``: closed role set Admin/Member/Viewer whose permission sets are
computed in code, plus an explicit per-member overlay for member management.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Mapping, Optional

from teamgate_shared.schemas.common import RbacMode

OWNER_ROLE_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
ADMIN_ROLE_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
MEMBER_ROLE_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")
VIEWER_ROLE_ID = uuid.UUID("00000000-0000-0000-0000-000000000004")

_PERMISSION_NAMESPACE = uuid.UUID("6f1c1a8e-3b7a-4f55-9a43-5f0f2b6f7c10")


def permission_id(key: str) -> uuid.UUID:
    """Stable id for a permission key, identical across processes."""
    return uuid.uuid5(_PERMISSION_NAMESPACE, key)


@dataclass(frozen=True)
class PermissionDef:
    key: str
    description: str

    @property
    def id(self) -> uuid.UUID:
        return permission_id(self.key)


@dataclass(frozen=True)
class RoleDef:
    id: uuid.UUID
    name: str
    description: str


@dataclass(frozen=True)
class MemberActions:
    """Permission key guarding each membership/workspace action.

    ``None`` means plain membership is enough.
    """

    view_members: Optional[str]
    invite: str
    remove: str
    change_role: str
    view_workspace: Optional[str]
    edit_workspace: str
    delete_workspace: str
    # Grants or revokes the top-tier role; None leaves it to top-tier holders
    transfer: Optional[str] = None


@dataclass(frozen=True)
class RbacCatalog:
    mode: RbacMode
    permissions: tuple[PermissionDef, ...]
    roles: tuple[RoleDef, ...]
    grants: Mapping[uuid.UUID, frozenset[str]]
    top_tier_role_id: uuid.UUID
    admin_role_ids: frozenset[uuid.UUID]
    default_role_id: uuid.UUID
    actions: MemberActions
    overlay_keys: frozenset[str] = field(default_factory=frozenset)

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(p.key for p in self.permissions)

    @property
    def system_role_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(r.id for r in self.roles)

    def role(self, role_id: uuid.UUID) -> Optional[RoleDef]:
        for role in self.roles:
            if role.id == role_id:
                return role
        return None

    def grants_for(self, role_id: uuid.UUID) -> frozenset[str]:
        return self.grants.get(role_id, frozenset())

    def is_admin_role(self, role_id: uuid.UUID) -> bool:
        return role_id in self.admin_role_ids


# ---------------------------------------------------------------------------
# Catalog flavor
# ---------------------------------------------------------------------------

_CATALOG_PERMISSIONS: tuple[PermissionDef, ...] = (
    PermissionDef("workspace.view", "View workspace details"),
    PermissionDef("workspace.edit", "Edit workspace name and description"),
    PermissionDef("workspace.delete", "Delete the workspace"),
    PermissionDef("workspace.transfer", "Transfer workspace ownership"),
    PermissionDef("member.view", "View workspace members"),
    PermissionDef("member.invite", "Invite new members"),
    PermissionDef("member.remove", "Remove members"),
    PermissionDef("member.role.assign", "Change member roles"),
    PermissionDef("task.view", "View tasks"),
    PermissionDef("task.create", "Create tasks"),
    PermissionDef("task.edit", "Edit tasks"),
    PermissionDef("task.delete", "Delete tasks"),
    PermissionDef("task.assign", "Assign tasks to members"),
    PermissionDef("task.status.change", "Change task status"),
    PermissionDef("project.view", "View projects"),
    PermissionDef("project.create", "Create projects"),
    PermissionDef("project.edit", "Edit projects"),
    PermissionDef("project.delete", "Delete projects"),
)

_CATALOG_ALL = frozenset(p.key for p in _CATALOG_PERMISSIONS)
_CATALOG_VIEWER = frozenset({"workspace.view", "member.view", "task.view", "project.view"})
_CATALOG_MEMBER = _CATALOG_VIEWER | {"task.create", "task.edit", "task.status.change"}
_CATALOG_ADMIN = _CATALOG_ALL - {"workspace.delete", "workspace.transfer"}

CATALOG = RbacCatalog(
    mode=RbacMode.CATALOG,
    permissions=_CATALOG_PERMISSIONS,
    roles=(
        RoleDef(OWNER_ROLE_ID, "Owner", "Full control, including deleting and transferring the workspace"),
        RoleDef(ADMIN_ROLE_ID, "Admin", "Manage members and all workspace content"),
        RoleDef(MEMBER_ROLE_ID, "Member", "Create and edit tasks"),
        RoleDef(VIEWER_ROLE_ID, "Viewer", "Read-only access"),
    ),
    grants={
        OWNER_ROLE_ID: _CATALOG_ALL,
        ADMIN_ROLE_ID: _CATALOG_ADMIN,
        MEMBER_ROLE_ID: _CATALOG_MEMBER,
        VIEWER_ROLE_ID: _CATALOG_VIEWER,
    },
    top_tier_role_id=OWNER_ROLE_ID,
    admin_role_ids=frozenset({OWNER_ROLE_ID, ADMIN_ROLE_ID}),
    default_role_id=MEMBER_ROLE_ID,
    actions=MemberActions(
        view_members="member.view",
        invite="member.invite",
        remove="member.remove",
        change_role="member.role.assign",
        view_workspace="workspace.view",
        edit_workspace="workspace.edit",
        delete_workspace="workspace.delete",
        transfer="workspace.transfer",
    ),
)


# ---------------------------------------------------------------------------
# Fixed flavor
# ---------------------------------------------------------------------------

class FixedRole(str, Enum):
    ADMIN = "Admin"
    MEMBER = "Member"
    VIEWER = "Viewer"


_RESOURCES = ("task", "workspace", "session")

# Grantable per member on top of the role; Admin holds them implicitly
OVERLAY_KEYS = frozenset({"member.invite", "member.remove", "member.role.change"})


def _fixed_permissions() -> tuple[PermissionDef, ...]:
    defs: list[PermissionDef] = []
    for resource in _RESOURCES:
        for verb in ("read", "create", "update", "delete"):
            defs.append(PermissionDef(f"{resource}.{verb}", f"{verb.capitalize()} any {resource}"))
        for verb in ("read", "update", "delete"):
            defs.append(
                PermissionDef(f"{resource}.own.{verb}", f"{verb.capitalize()} own {resource}")
            )
    for verb in ("read", "create", "update", "delete"):
        defs.append(PermissionDef(f"project.{verb}", f"{verb.capitalize()} projects"))
    defs.append(PermissionDef("admin.access", "Administrative access"))
    defs.extend(
        PermissionDef(key, desc)
        for key, desc in (
            ("member.invite", "Invite new members"),
            ("member.remove", "Remove members"),
            ("member.role.change", "Change member roles"),
        )
    )
    return tuple(defs)


_FIXED_PERMISSIONS = _fixed_permissions()


@lru_cache(maxsize=None)
def fixed_role_permissions(role: FixedRole) -> frozenset[str]:
    """Static permission set of a fixed-flavor role."""
    if role is FixedRole.ADMIN:
        return frozenset(p.key for p in _FIXED_PERMISSIONS)

    keys = {"project.read"}
    for resource in _RESOURCES:
        keys.add(f"{resource}.read")
        keys.add(f"{resource}.own.read")
    if role is FixedRole.MEMBER:
        for resource in _RESOURCES:
            keys.add(f"{resource}.create")
            keys.add(f"{resource}.own.update")
            keys.add(f"{resource}.own.delete")
    return frozenset(keys)


_FIXED_ROLE_IDS = {
    FixedRole.ADMIN: ADMIN_ROLE_ID,
    FixedRole.MEMBER: MEMBER_ROLE_ID,
    FixedRole.VIEWER: VIEWER_ROLE_ID,
}

FIXED = RbacCatalog(
    mode=RbacMode.FIXED,
    permissions=_FIXED_PERMISSIONS,
    roles=(
        RoleDef(ADMIN_ROLE_ID, FixedRole.ADMIN.value, "Full access to every resource"),
        RoleDef(MEMBER_ROLE_ID, FixedRole.MEMBER.value, "Read everything, write own resources"),
        RoleDef(VIEWER_ROLE_ID, FixedRole.VIEWER.value, "Read-only access"),
    ),
    grants={role_id: fixed_role_permissions(role) for role, role_id in _FIXED_ROLE_IDS.items()},
    top_tier_role_id=ADMIN_ROLE_ID,
    admin_role_ids=frozenset({ADMIN_ROLE_ID}),
    default_role_id=MEMBER_ROLE_ID,
    actions=MemberActions(
        view_members=None,
        invite="member.invite",
        remove="member.remove",
        change_role="member.role.change",
        view_workspace=None,
        edit_workspace="workspace.update",
        delete_workspace="workspace.delete",
    ),
    overlay_keys=OVERLAY_KEYS,
)


def get_catalog(mode: RbacMode) -> RbacCatalog:
    return CATALOG if RbacMode(mode) is RbacMode.CATALOG else FIXED
