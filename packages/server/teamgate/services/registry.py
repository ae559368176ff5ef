"""Wiring of the engine's services for one deployment."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from teamgate.core.clock import Clock, SystemClock
from teamgate.core.config import Settings
from teamgate.core.database import SessionFactory, transaction
from teamgate.core.notifier import LogNotifier, Notifier
from teamgate.core.rbac.catalogs import RbacCatalog, get_catalog
from teamgate.core.rbac.evaluator import (
    AuthorizationEvaluator,
    build_evaluator,
    build_ownership_policy,
)
from teamgate.services import roles as role_service
from teamgate.services.invitations import InvitationEngine
from teamgate.services.memberships import MembershipService
from teamgate.services.workspaces import WorkspaceService


@dataclass
class Services:
    settings: Settings
    sessions: SessionFactory
    catalog: RbacCatalog
    evaluator: AuthorizationEvaluator
    memberships: MembershipService
    invitations: InvitationEngine
    workspaces: WorkspaceService

    async def sync_catalog(self) -> None:
        async with transaction(self.sessions) as session:
            await role_service.sync_catalog(session, self.catalog)


def build_services(
    settings: Settings,
    sessions: SessionFactory,
    *,
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
) -> Services:
    clock = clock or SystemClock()
    catalog = get_catalog(settings.rbac_mode)
    evaluator = build_evaluator(
        sessions, catalog, build_ownership_policy(settings.resolved_ownership_mode)
    )
    return Services(
        settings=settings,
        sessions=sessions,
        catalog=catalog,
        evaluator=evaluator,
        memberships=MembershipService(sessions, catalog, evaluator, clock),
        invitations=InvitationEngine(
            sessions,
            catalog,
            evaluator,
            notifier=notifier or LogNotifier(),
            clock=clock,
            ttl=timedelta(days=settings.invitation_ttl_days),
            public_base_url=settings.public_base_url,
        ),
        workspaces=WorkspaceService(sessions, catalog, evaluator, clock),
    )
