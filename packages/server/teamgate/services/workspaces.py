"""
Workspace service: create (creator becomes top tier), list, update, delete.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlmodel import select

from teamgate.core.clock import Clock, SystemClock
from teamgate.core.database import SessionFactory, transaction
from teamgate.core.rbac.catalogs import RbacCatalog
from teamgate.core.rbac.evaluator import AuthContext, AuthorizationEvaluator
from teamgate.models.invitation import Invitation
from teamgate.models.membership import Membership
from teamgate.models.role import Role
from teamgate.models.workspace import Workspace
from teamgate.services.memberships import get_workspace

log = structlog.get_logger()


class WorkspaceService:
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

    async def create_workspace(
        self,
        name: str,
        description: Optional[str] = None,
        *,
        creator: AuthContext,
    ) -> Workspace:
        """Create a workspace and make the creator its top-tier member."""
        now = self.clock.now()
        async with transaction(self.sessions) as session:
            workspace = Workspace(name=name, description=description, created_at=now, updated_at=now)
            session.add(workspace)
            await session.flush()

            session.add(
                Membership(
                    workspace_id=workspace.id,
                    principal_id=creator.principal_id,
                    role_id=self.catalog.top_tier_role_id,
                    joined_at=now,
                )
            )
            await session.flush()

        log.info(
            "workspace.created",
            workspace_id=str(workspace.id),
            creator=str(creator.principal_id),
        )
        return workspace

    async def get_workspace(
        self, workspace_id: uuid.UUID, *, actor: Optional[AuthContext] = None
    ) -> Workspace:
        if actor is not None:
            await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.view_workspace
            )
        async with transaction(self.sessions) as session:
            return await get_workspace(session, workspace_id)

    async def list_workspaces_for_principal(self, principal_id: uuid.UUID) -> list[dict]:
        """Workspaces the principal belongs to, newest first, with their role."""
        async with transaction(self.sessions) as session:
            result = await session.execute(
                select(Workspace, Role)
                .join(Membership, Membership.workspace_id == Workspace.id)
                .join(Role, Role.id == Membership.role_id)
                .where(Membership.principal_id == principal_id)
                .order_by(Workspace.created_at.desc())
            )
            rows = result.all()
        return [
            {
                "id": ws.id,
                "name": ws.name,
                "description": ws.description,
                "created_at": ws.created_at,
                "updated_at": ws.updated_at,
                "role_id": role.id,
                "role_name": role.name,
            }
            for ws, role in rows
        ]

    async def update_workspace(
        self,
        workspace_id: uuid.UUID,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        actor: Optional[AuthContext] = None,
    ) -> Workspace:
        if actor is not None:
            await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.edit_workspace
            )
        async with transaction(self.sessions) as session:
            workspace = await get_workspace(session, workspace_id)
            if name is not None:
                workspace.name = name
            if description is not None:
                workspace.description = description
            workspace.updated_at = self.clock.now()
            session.add(workspace)
            await session.flush()

        log.info("workspace.updated", workspace_id=str(workspace_id))
        return workspace

    async def delete_workspace(
        self, workspace_id: uuid.UUID, *, actor: Optional[AuthContext] = None
    ) -> None:
        """Delete a workspace with its memberships and invitations."""
        if actor is not None:
            await self.evaluator.assert_permission(
                actor.in_workspace(workspace_id), self.catalog.actions.delete_workspace
            )
        async with transaction(self.sessions) as session:
            workspace = await get_workspace(session, workspace_id)
            await session.execute(delete(Invitation).where(Invitation.workspace_id == workspace_id))
            await session.execute(delete(Membership).where(Membership.workspace_id == workspace_id))
            await session.delete(workspace)
            await session.flush()

        log.info("workspace.deleted", workspace_id=str(workspace_id))
