"""
Invitation engine: issue, list, revoke, preview and accept invitation tokens.

State machine: pending -> accepted | revoked | expired, all terminal.
Notification is sent after the create transaction commits and never fails
the operation.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from teamgate.core.clock import Clock, SystemClock, as_utc
from teamgate.core.database import SessionFactory, transaction
from teamgate.core.errors import (
    AlreadyMemberError,
    InvitationExpiredError,
    InvitationInvalidError,
    InvitationNotFoundError,
    PendingInvitationExistsError,
)
from teamgate.core.notifier import LogNotifier, Notifier
from teamgate.core.rbac.catalogs import RbacCatalog
from teamgate.core.rbac.evaluator import AuthContext, AuthorizationEvaluator
from teamgate.models.invitation import Invitation
from teamgate.models.role import Role
from teamgate.models.workspace import Workspace
from teamgate.services import roles as role_service
from teamgate.services.memberships import find_membership, get_workspace, upsert_membership
from teamgate_shared.schemas.common import INVITATION_TRANSITIONS, InvitationStatus

log = structlog.get_logger()

DEFAULT_TTL = timedelta(days=7)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _transition(invitation: Invitation, target: InvitationStatus, now: datetime) -> None:
    current = InvitationStatus(invitation.status)
    if target not in INVITATION_TRANSITIONS[current]:
        raise InvitationInvalidError(f"Invitation is already {current.value}")
    invitation.status = target.value
    invitation.updated_at = now


def invitation_info(invitation: Invitation, role: Role) -> dict:
    return {
        "id": invitation.id,
        "workspace_id": invitation.workspace_id,
        "email": invitation.email,
        "role_id": invitation.role_id,
        "role_name": role.name,
        "status": invitation.status,
        "invited_by": invitation.invited_by,
        "expires_at": as_utc(invitation.expires_at),
        "created_at": as_utc(invitation.created_at),
    }


class InvitationEngine:
    def __init__(
        self,
        sessions: SessionFactory,
        catalog: RbacCatalog,
        evaluator: AuthorizationEvaluator,
        *,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        ttl: timedelta = DEFAULT_TTL,
        public_base_url: str = "http://localhost:8000",
    ):
        self.sessions = sessions
        self.catalog = catalog
        self.evaluator = evaluator
        self.notifier = notifier or LogNotifier()
        self.clock = clock or SystemClock()
        self.ttl = ttl
        self.public_base_url = public_base_url.rstrip("/")

    def accept_url(self, token: str) -> str:
        return f"{self.public_base_url}/workspace-invitations/{token}/accept"

    async def create_invitation(
        self,
        workspace_id: uuid.UUID,
        email: str,
        role_id: Optional[uuid.UUID] = None,
        *,
        actor: AuthContext,
    ) -> dict:
        """Issue an invitation. Returns the invitation info plus token and accept URL."""
        grant = await self.evaluator.assert_admin(actor.in_workspace(workspace_id))

        email = normalize_email(email)
        role_id = role_id or self.catalog.default_role_id
        if role_id == self.catalog.top_tier_role_id:
            self.evaluator.assert_top_tier_grantor(grant)
        now = self.clock.now()
        token = secrets.token_urlsafe(32)

        async with transaction(self.sessions) as session:
            await get_workspace(session, workspace_id)
            role = await role_service.get_role(session, role_id)

            # A lapsed pending row would otherwise block the new one
            await session.execute(
                update(Invitation)
                .where(
                    Invitation.workspace_id == workspace_id,
                    Invitation.email == email,
                    Invitation.status == InvitationStatus.PENDING.value,
                    Invitation.expires_at <= now,
                )
                .values(status=InvitationStatus.EXPIRED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            invitation = Invitation(
                workspace_id=workspace_id,
                invited_by=actor.principal_id,
                email=email,
                role_id=role.id,
                status=InvitationStatus.PENDING.value,
                token=token,
                expires_at=now + self.ttl,
                created_at=now,
                updated_at=now,
            )
            session.add(invitation)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise PendingInvitationExistsError() from exc
            info = invitation_info(invitation, role)

        log.info(
            "invitation.created",
            invitation_id=str(invitation.id),
            workspace_id=str(workspace_id),
            role=role.name,
        )

        accept_url = self.accept_url(token)
        await self._notify(workspace_id, email, accept_url, role.name, actor)
        return {**info, "token": token, "accept_url": accept_url}

    async def list_invitations(
        self, workspace_id: uuid.UUID, *, actor: AuthContext
    ) -> list[dict]:
        """All invitations of a workspace, newest first."""
        await self.evaluator.assert_admin(actor.in_workspace(workspace_id))
        async with transaction(self.sessions) as session:
            result = await session.execute(
                select(Invitation, Role)
                .join(Role, Role.id == Invitation.role_id)
                .where(Invitation.workspace_id == workspace_id)
                .order_by(Invitation.created_at.desc())
            )
            return [invitation_info(inv, role) for inv, role in result.all()]

    async def get_invitation_by_token(self, token: str) -> dict:
        """Public preview of an invitation; needs no membership."""
        async with transaction(self.sessions) as session:
            result = await session.execute(
                select(Invitation, Workspace, Role)
                .join(Workspace, Workspace.id == Invitation.workspace_id)
                .join(Role, Role.id == Invitation.role_id)
                .where(Invitation.token == token)
            )
            row = result.first()
        if row is None:
            raise InvitationNotFoundError()

        invitation, workspace, role = row
        status = InvitationStatus(invitation.status)
        expires_at = as_utc(invitation.expires_at)
        if status is InvitationStatus.PENDING and expires_at <= self.clock.now():
            status = InvitationStatus.EXPIRED
        return {
            "id": invitation.id,
            "workspace_id": workspace.id,
            "workspace_name": workspace.name,
            "role_id": role.id,
            "role_name": role.name,
            "status": status,
            "expires_at": expires_at,
        }

    async def revoke_invitation(
        self, workspace_id: uuid.UUID, invitation_id: uuid.UUID, *, actor: AuthContext
    ) -> dict:
        await self.evaluator.assert_admin(actor.in_workspace(workspace_id))
        now = self.clock.now()
        async with transaction(self.sessions) as session:
            result = await session.execute(
                select(Invitation)
                .where(
                    Invitation.id == invitation_id,
                    Invitation.workspace_id == workspace_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            invitation = result.scalar_one_or_none()
            if invitation is None:
                raise InvitationNotFoundError()
            _transition(invitation, InvitationStatus.REVOKED, now)
            session.add(invitation)
            await session.flush()
            role = await role_service.get_role(session, invitation.role_id)
            info = invitation_info(invitation, role)

        log.info(
            "invitation.revoked",
            invitation_id=str(invitation_id),
            workspace_id=str(workspace_id),
            by=str(actor.principal_id),
        )
        return info

    async def accept_invitation(
        self, token: str, principal_id: uuid.UUID
    ) -> tuple[uuid.UUID, Role]:
        """Redeem a token for ``principal_id``. Returns ``(workspace_id, role)``.

        An expired token is marked expired (and that change committed) before
        ``InvitationExpiredError`` is raised.
        """
        now = self.clock.now()
        expired = False

        async with transaction(self.sessions) as session:
            result = await session.execute(
                select(Invitation)
                .where(Invitation.token == token)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            invitation = result.scalar_one_or_none()
            if invitation is None:
                raise InvitationNotFoundError()
            if invitation.status != InvitationStatus.PENDING.value:
                raise InvitationInvalidError(f"Invitation is already {invitation.status}")

            workspace_id = invitation.workspace_id
            if as_utc(invitation.expires_at) <= now:
                _transition(invitation, InvitationStatus.EXPIRED, now)
                session.add(invitation)
                expired = True
            else:
                if await find_membership(session, workspace_id, principal_id) is not None:
                    raise AlreadyMemberError()
                role = await role_service.get_role(session, invitation.role_id)
                await upsert_membership(
                    session,
                    workspace_id=workspace_id,
                    principal_id=principal_id,
                    role_id=role.id,
                    invited_by=invitation.invited_by,
                    joined_at=now,
                )
                _transition(invitation, InvitationStatus.ACCEPTED, now)
                session.add(invitation)
            await session.flush()

        if expired:
            log.info("invitation.expired", invitation_id=str(invitation.id), on="accept")
            raise InvitationExpiredError()

        log.info(
            "invitation.accepted",
            invitation_id=str(invitation.id),
            workspace_id=str(workspace_id),
            principal_id=str(principal_id),
            role=role.name,
        )
        return workspace_id, role

    async def expire_stale(self) -> int:
        """Flip every lapsed pending invitation to expired. Returns the count."""
        now = self.clock.now()
        async with transaction(self.sessions) as session:
            result = await session.execute(
                update(Invitation)
                .where(
                    Invitation.status == InvitationStatus.PENDING.value,
                    Invitation.expires_at <= now,
                )
                .values(status=InvitationStatus.EXPIRED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount or 0
        if count:
            log.info("invitation.expired", count=count, on="sweep")
        return count

    async def _notify(
        self,
        workspace_id: uuid.UUID,
        email: str,
        accept_url: str,
        role_name: str,
        actor: AuthContext,
    ) -> None:
        try:
            await self.notifier.send_workspace_invitation(
                workspace_id=workspace_id,
                email=email,
                accept_url=accept_url,
                role=role_name,
                inviter_name=actor.display_name or actor.email,
            )
        except Exception as exc:
            log.warning(
                "invitation.notify_failed",
                workspace_id=str(workspace_id),
                error=str(exc),
            )
