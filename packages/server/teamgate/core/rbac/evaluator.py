"""
Permission evaluation.

``AuthorizationEvaluator`` answers permission questions for a principal inside
a workspace. Two strategies resolve the effective key set:

- ``CatalogEvaluator`` joins the member's role through ``role_permissions``.
- ``FixedRoleEvaluator`` uses the in-code role tables plus the member's
  explicit overlay.

Top-tier members and the local admin context bypass individual checks.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamgate.core.database import SessionFactory, transaction
from teamgate.core.errors import PermissionDeniedError
from teamgate.core.rbac.catalogs import RbacCatalog
from teamgate.models.membership import Membership
from teamgate.models.role import Permission, Role, RolePermission
from teamgate_shared.schemas.common import OwnershipMode, RbacMode

log = structlog.get_logger()


@dataclass(frozen=True)
class AuthContext:
    """Who is asking, and in which workspace."""

    principal_id: uuid.UUID
    workspace_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    local_admin: bool = False

    def in_workspace(self, workspace_id: uuid.UUID) -> "AuthContext":
        return replace(self, workspace_id=workspace_id)


@dataclass(frozen=True)
class Grant:
    """A principal's resolved standing in one workspace."""

    role_id: Optional[uuid.UUID]
    role_name: Optional[str]
    permissions: frozenset[str]
    is_admin: bool
    bypass: bool


# ---------------------------------------------------------------------------
# Ownership policies
# ---------------------------------------------------------------------------

class OwnershipPolicy(Protocol):
    def is_owner(self, ctx: AuthContext, resource: Any) -> bool: ...


class AlwaysOwner:
    """Every principal owns every resource. Single-tenant deployments only."""

    def is_owner(self, ctx: AuthContext, resource: Any) -> bool:
        return True


class FieldBasedOwner:
    """Owner when one of ``owner_fields`` on the resource equals the principal."""

    def __init__(self, owner_fields: tuple[str, ...] = ("created_by", "assigned_to")):
        self.owner_fields = owner_fields

    def is_owner(self, ctx: AuthContext, resource: Any) -> bool:
        if resource is None:
            return False
        for name in self.owner_fields:
            value = resource.get(name) if isinstance(resource, dict) else getattr(resource, name, None)
            if value is not None and str(value) == str(ctx.principal_id):
                return True
        return False


def build_ownership_policy(mode: OwnershipMode) -> OwnershipPolicy:
    if OwnershipMode(mode) is OwnershipMode.ALWAYS:
        return AlwaysOwner()
    return FieldBasedOwner()


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------

class AuthorizationEvaluator:
    """Base evaluator; subclasses supply ``_role_permissions``."""

    def __init__(
        self,
        sessions: SessionFactory,
        catalog: RbacCatalog,
        ownership: OwnershipPolicy,
    ):
        self.sessions = sessions
        self.catalog = catalog
        self.ownership = ownership

    async def _role_permissions(
        self, session: AsyncSession, membership: Membership
    ) -> frozenset[str]:
        raise NotImplementedError

    async def resolve(self, ctx: AuthContext) -> Optional[Grant]:
        """Resolve the caller's grant, or ``None`` when not a member."""
        if ctx.local_admin:
            return Grant(
                role_id=self.catalog.top_tier_role_id,
                role_name=None,
                permissions=self.catalog.keys,
                is_admin=True,
                bypass=True,
            )
        if ctx.workspace_id is None:
            return None

        async with transaction(self.sessions) as session:
            result = await session.execute(
                select(Membership, Role)
                .join(Role, Role.id == Membership.role_id)
                .where(
                    Membership.workspace_id == ctx.workspace_id,
                    Membership.principal_id == ctx.principal_id,
                )
            )
            row = result.first()
            if row is None:
                return None
            membership, role = row
            permissions = await self._role_permissions(session, membership)

        top_tier = membership.role_id == self.catalog.top_tier_role_id
        return Grant(
            role_id=role.id,
            role_name=role.name,
            permissions=self.catalog.keys if top_tier else permissions,
            is_admin=self.catalog.is_admin_role(role.id),
            bypass=top_tier,
        )

    async def effective_permissions(self, ctx: AuthContext) -> frozenset[str]:
        grant = await self.resolve(ctx)
        return grant.permissions if grant else frozenset()

    async def has_permission(self, ctx: AuthContext, key: str) -> bool:
        grant = await self.resolve(ctx)
        return _allows(grant, key)

    async def has_any(self, ctx: AuthContext, keys: Iterable[str]) -> bool:
        grant = await self.resolve(ctx)
        return any(_allows(grant, key) for key in keys)

    async def has_all(self, ctx: AuthContext, keys: Iterable[str]) -> bool:
        grant = await self.resolve(ctx)
        return all(_allows(grant, key) for key in keys)

    async def assert_permission(self, ctx: AuthContext, key: Optional[str]) -> Grant:
        """Require ``key`` (or bare membership when ``key`` is None)."""
        grant = await self.assert_member(ctx)
        if key is not None and not _allows(grant, key):
            log.info(
                "authz.denied",
                principal_id=str(ctx.principal_id),
                workspace_id=str(ctx.workspace_id),
                permission=key,
            )
            raise PermissionDeniedError(f"Missing permission: {key}")
        return grant

    async def assert_member(self, ctx: AuthContext) -> Grant:
        grant = await self.resolve(ctx)
        if grant is None:
            raise PermissionDeniedError("Not a member of this workspace")
        return grant

    async def assert_admin(self, ctx: AuthContext) -> Grant:
        grant = await self.assert_member(ctx)
        if not grant.is_admin:
            raise PermissionDeniedError("Workspace admin privileges required")
        return grant

    def assert_top_tier_grantor(self, grant: Grant) -> None:
        """Only top-tier holders (or the transfer key) may hand out or take away the top tier."""
        transfer = self.catalog.actions.transfer
        if grant.bypass or (transfer is not None and transfer in grant.permissions):
            return
        top = self.catalog.role(self.catalog.top_tier_role_id)
        log.info("authz.denied", role_id=str(grant.role_id), permission=transfer or "top_tier")
        raise PermissionDeniedError(f"Only {top.name} members can grant or revoke the {top.name} role")

    async def can_access(
        self,
        ctx: AuthContext,
        permission: str,
        own_permission: Optional[str] = None,
        resource: Any = None,
    ) -> bool:
        """Check ``permission``, falling back to ``own_permission`` on owned resources."""
        grant = await self.resolve(ctx)
        if _allows(grant, permission):
            return True
        if own_permission is None or not _allows(grant, own_permission):
            return False
        return self.ownership.is_owner(ctx, resource)


class CatalogEvaluator(AuthorizationEvaluator):
    """Permissions come from the role's rows in ``role_permissions``."""

    async def _role_permissions(
        self, session: AsyncSession, membership: Membership
    ) -> frozenset[str]:
        result = await session.execute(
            select(Permission.key)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id == membership.role_id)
            .distinct()
        )
        return frozenset(result.scalars().all())


class FixedRoleEvaluator(AuthorizationEvaluator):
    """Permissions come from the static role table plus the member overlay."""

    async def _role_permissions(
        self, session: AsyncSession, membership: Membership
    ) -> frozenset[str]:
        overlay = frozenset(membership.permissions or ()) & self.catalog.overlay_keys
        return self.catalog.grants_for(membership.role_id) | overlay


def _allows(grant: Optional[Grant], key: str) -> bool:
    if grant is None:
        return False
    return grant.bypass or key in grant.permissions


def build_evaluator(
    sessions: SessionFactory, catalog: RbacCatalog, ownership: OwnershipPolicy
) -> AuthorizationEvaluator:
    if catalog.mode is RbacMode.FIXED:
        return FixedRoleEvaluator(sessions, catalog, ownership)
    return CatalogEvaluator(sessions, catalog, ownership)
