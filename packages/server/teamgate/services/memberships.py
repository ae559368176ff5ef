"""
Membership service: add, change role, remove and overlay updates.

Every mutation is one transaction. Paths that can shrink the top tier lock
the workspace's top-tier rows (ordered by principal id) before the target
row, then check the last-owner invariant on that locked snapshot.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamgate.core.clock import Clock, SystemClock, as_utc
from teamgate.core.database import SessionFactory, transaction
from teamgate.core.errors import (
    AlreadyMemberError,
    BadRequestError,
    LastOwnerError,
    LastOwnerRoleChangeError,
    MemberNotFoundError,
    PermissionOverlayUnsupportedError,
    SelfActionError,
    WorkspaceNotFoundError,
)
from teamgate.core.rbac.catalogs import RbacCatalog
from teamgate.core.rbac.evaluator import AuthContext, AuthorizationEvaluator
from teamgate.models.membership import Membership
from teamgate.models.role import Role
from teamgate.models.workspace import Workspace
from teamgate.services import roles as role_service
from teamgate_shared.schemas.common import RbacMode

log = structlog.get_logger()


def member_info(membership: Membership, role: Role) -> dict:
    return {
        "id": membership.id,
        "workspace_id": membership.workspace_id,
        "principal_id": membership.principal_id,
        "role_id": membership.role_id,
        "role_name": role.name,
        "invited_by": membership.invited_by,
        "permissions": list(membership.permissions or []),
        "joined_at": as_utc(membership.joined_at),
    }


# ---------------------------------------------------------------------------
# Store helpers (run inside a caller-owned transaction)
# ---------------------------------------------------------------------------

async def get_workspace(session: AsyncSession, workspace_id: uuid.UUID) -> Workspace:
    workspace = await session.get(Workspace, workspace_id)
    if workspace is None:
        raise WorkspaceNotFoundError()
    return workspace


async def find_membership(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    principal_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[Membership]:
    stmt = select(Membership).where(
        Membership.workspace_id == workspace_id,
        Membership.principal_id == principal_id,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def lock_top_tier(
    session: AsyncSession, workspace_id: uuid.UUID, top_tier_role_id: uuid.UUID
) -> list[Membership]:
    """Lock every top-tier membership of the workspace, in principal order."""
    result = await session.execute(
        select(Membership)
        .where(
            Membership.workspace_id == workspace_id,
            Membership.role_id == top_tier_role_id,
        )
        .order_by(Membership.principal_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def upsert_membership(
    session: AsyncSession,
    *,
    workspace_id: uuid.UUID,
    principal_id: uuid.UUID,
    role_id: uuid.UUID,
    invited_by: Optional[uuid.UUID],
    joined_at,
) -> None:
    """Insert a membership, refreshing the role if the pair already exists."""
    dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert

    table = Membership.__table__
    stmt = insert(table).values(
        id=uuid.uuid4(),
        workspace_id=workspace_id,
        principal_id=principal_id,
        role_id=role_id,
        invited_by=invited_by,
        permissions=[],
        joined_at=joined_at,
        created_at=joined_at,
        updated_at=joined_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.workspace_id, table.c.principal_id],
        set_={"role_id": role_id, "updated_at": joined_at},
    )
    await session.execute(stmt)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MembershipService:
    def __init__(
        self,
        sessions: SessionFactory,
        catalog: RbacCatalog,
        evaluator: AuthorizationEvaluator,
        clock: Optional[Clock] = None,
    ):
        self.sessions = sessions
        self.catalog = catalog
        self.evaluator = evaluator
        self.clock = clock or SystemClock()

    async def list_members(
        self, workspace_id: uuid.UUID, *, actor: Optional[AuthContext] = None
    ) -> list[dict]:
        """Members with their role name, in join order."""
        if actor is not None:
            await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.view_members
            )
        async with transaction(self.sessions) as session:
            await get_workspace(session, workspace_id)
            result = await session.execute(
                select(Membership, Role)
                .join(Role, Role.id == Membership.role_id)
                .where(Membership.workspace_id == workspace_id)
                .order_by(Membership.joined_at, Membership.created_at)
            )
            return [member_info(m, r) for m, r in result.all()]

    async def get_member(self, workspace_id: uuid.UUID, principal_id: uuid.UUID) -> dict:
        async with transaction(self.sessions) as session:
            membership = await find_membership(session, workspace_id, principal_id)
            if membership is None:
                raise MemberNotFoundError()
            role = await role_service.get_role(session, membership.role_id)
            return member_info(membership, role)

    async def add_member(
        self,
        workspace_id: uuid.UUID,
        principal_id: uuid.UUID,
        role_id: uuid.UUID,
        *,
        invited_by: Optional[uuid.UUID] = None,
        permissions: Optional[Iterable[str]] = None,
        actor: Optional[AuthContext] = None,
    ) -> dict:
        if actor is not None:
            grant = await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.invite
            )
            if role_id == self.catalog.top_tier_role_id:
                self.evaluator.assert_top_tier_grantor(grant)
            invited_by = invited_by or actor.principal_id
        overlay = self._validate_overlay(permissions) if permissions else []

        async with transaction(self.sessions) as session:
            await get_workspace(session, workspace_id)
            role = await role_service.get_role(session, role_id)
            if await find_membership(session, workspace_id, principal_id) is not None:
                raise AlreadyMemberError()

            membership = Membership(
                workspace_id=workspace_id,
                principal_id=principal_id,
                role_id=role.id,
                invited_by=invited_by,
                permissions=overlay,
                joined_at=self.clock.now(),
            )
            session.add(membership)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise AlreadyMemberError() from exc
            info = member_info(membership, role)

        log.info(
            "member.added",
            workspace_id=str(workspace_id),
            principal_id=str(principal_id),
            role=role.name,
        )
        return info

    async def update_member_role(
        self,
        workspace_id: uuid.UUID,
        principal_id: uuid.UUID,
        role_id: uuid.UUID,
        *,
        actor: Optional[AuthContext] = None,
    ) -> dict:
        top_tier = self.catalog.top_tier_role_id
        grant = None
        if actor is not None:
            grant = await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.change_role
            )
            if actor.principal_id == principal_id and not self.catalog.is_admin_role(role_id):
                raise SelfActionError("Cannot demote yourself")
            if role_id == top_tier:
                self.evaluator.assert_top_tier_grantor(grant)

        async with transaction(self.sessions) as session:
            role = await role_service.get_role(session, role_id)
            owners = await lock_top_tier(session, workspace_id, top_tier)
            membership = await find_membership(
                session, workspace_id, principal_id, for_update=True
            )
            if membership is None:
                raise MemberNotFoundError()

            previous_role_id = membership.role_id
            if previous_role_id == role_id:
                return member_info(membership, role)
            if grant is not None and previous_role_id == top_tier:
                self.evaluator.assert_top_tier_grantor(grant)

            if (
                previous_role_id == top_tier
                and role_id != top_tier
                and _is_sole_holder(owners, principal_id)
            ):
                raise LastOwnerRoleChangeError()

            membership.role_id = role_id
            membership.updated_at = self.clock.now()
            session.add(membership)
            await session.flush()
            info = member_info(membership, role)

        log.info(
            "member.role_changed",
            workspace_id=str(workspace_id),
            principal_id=str(principal_id),
            from_role_id=str(previous_role_id),
            to_role=role.name,
        )
        return info

    async def remove_member(
        self,
        workspace_id: uuid.UUID,
        principal_id: uuid.UUID,
        *,
        actor: Optional[AuthContext] = None,
    ) -> None:
        grant = None
        if actor is not None:
            grant = await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.remove
            )
            if actor.principal_id == principal_id:
                raise SelfActionError("Cannot remove yourself")

        top_tier = self.catalog.top_tier_role_id
        async with transaction(self.sessions) as session:
            owners = await lock_top_tier(session, workspace_id, top_tier)
            membership = await find_membership(
                session, workspace_id, principal_id, for_update=True
            )
            if membership is None:
                raise MemberNotFoundError()
            if grant is not None and membership.role_id == top_tier:
                self.evaluator.assert_top_tier_grantor(grant)

            if membership.role_id == top_tier and _is_sole_holder(owners, principal_id):
                raise LastOwnerError()

            await session.delete(membership)
            await session.flush()

        log.info(
            "member.removed",
            workspace_id=str(workspace_id),
            principal_id=str(principal_id),
        )

    async def set_member_permissions(
        self,
        workspace_id: uuid.UUID,
        principal_id: uuid.UUID,
        keys: Iterable[str],
        *,
        actor: Optional[AuthContext] = None,
    ) -> dict:
        """Replace a member's explicit permission overlay (fixed catalog only)."""
        if self.catalog.mode is not RbacMode.FIXED:
            raise PermissionOverlayUnsupportedError()
        if actor is not None:
            await self.evaluator.assert_admin(actor.in_workspace(workspace_id))
        overlay = self._validate_overlay(keys)

        async with transaction(self.sessions) as session:
            membership = await find_membership(
                session, workspace_id, principal_id, for_update=True
            )
            if membership is None:
                raise MemberNotFoundError()
            membership.permissions = overlay
            membership.updated_at = self.clock.now()
            session.add(membership)
            await session.flush()
            role = await role_service.get_role(session, membership.role_id)
            info = member_info(membership, role)

        log.info(
            "member.permissions_set",
            workspace_id=str(workspace_id),
            principal_id=str(principal_id),
            permissions=overlay,
        )
        return info

    async def effective_permissions(self, ctx: AuthContext) -> dict:
        """The caller's role and resolved permission keys in ``ctx.workspace_id``."""
        grant = await self.evaluator.assert_member(ctx)
        return {
            "workspace_id": ctx.workspace_id,
            "principal_id": ctx.principal_id,
            "role_id": grant.role_id,
            "role_name": grant.role_name,
            "is_admin": grant.is_admin,
            "permissions": sorted(grant.permissions),
        }

    def _validate_overlay(self, keys: Iterable[str]) -> list[str]:
        if self.catalog.mode is not RbacMode.FIXED:
            raise PermissionOverlayUnsupportedError()
        overlay = sorted(set(keys))
        unknown = [k for k in overlay if k not in self.catalog.overlay_keys]
        if unknown:
            raise BadRequestError(f"Permissions cannot be granted per member: {', '.join(unknown)}")
        return overlay


def _is_sole_holder(owners: list[Membership], principal_id: uuid.UUID) -> bool:
    return len(owners) == 1 and owners[0].principal_id == principal_id
