"""
Tests for permission evaluation: both strategies, admin bypass, ownership.
"""

from __future__ import annotations

import uuid
from types import SimpleNamespace

import pytest

from conftest import create_workspace, principal
from teamgate.core.errors import PermissionDeniedError
from teamgate.core.rbac.catalogs import (
    ADMIN_ROLE_ID,
    MEMBER_ROLE_ID,
    VIEWER_ROLE_ID,
)
from teamgate.core.rbac.evaluator import (
    AlwaysOwner,
    AuthContext,
    CatalogEvaluator,
    FieldBasedOwner,
    FixedRoleEvaluator,
    build_ownership_policy,
)
from teamgate_shared.schemas.common import OwnershipMode


class TestCatalogEvaluator:
    async def test_strategy_selected(self, services):
        assert isinstance(services.evaluator, CatalogEvaluator)

    async def test_member_permissions(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        member = principal()
        await services.memberships.add_member(workspace_id, member.principal_id, MEMBER_ROLE_ID)

        ctx = member.in_workspace(workspace_id)
        evaluator = services.evaluator
        assert await evaluator.has_permission(ctx, "task.create")
        assert not await evaluator.has_permission(ctx, "member.invite")
        assert await evaluator.has_any(ctx, ["member.invite", "task.view"])
        assert not await evaluator.has_all(ctx, ["member.invite", "task.view"])
        assert await evaluator.effective_permissions(ctx) == services.catalog.grants_for(
            MEMBER_ROLE_ID
        )

    async def test_assert_permission(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        viewer = principal()
        await services.memberships.add_member(workspace_id, viewer.principal_id, VIEWER_ROLE_ID)

        ctx = viewer.in_workspace(workspace_id)
        grant = await services.evaluator.assert_permission(ctx, "task.view")
        assert grant.role_name == "Viewer"
        with pytest.raises(PermissionDeniedError, match="task.create"):
            await services.evaluator.assert_permission(ctx, "task.create")

    async def test_non_member_has_nothing(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        stranger = principal().in_workspace(workspace_id)

        assert await services.evaluator.effective_permissions(stranger) == frozenset()
        assert not await services.evaluator.has_permission(stranger, "workspace.view")
        with pytest.raises(PermissionDeniedError):
            await services.evaluator.assert_member(stranger)

    async def test_owner_bypasses(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        ctx = owner.in_workspace(workspace_id)

        assert await services.evaluator.has_permission(ctx, "workspace.transfer")
        assert await services.evaluator.has_permission(ctx, "anything.at.all")
        grant = await services.evaluator.assert_admin(ctx)
        assert grant.bypass and grant.is_admin

    async def test_admin_is_admin_tier_without_bypass(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        admin = principal()
        await services.memberships.add_member(workspace_id, admin.principal_id, ADMIN_ROLE_ID)

        ctx = admin.in_workspace(workspace_id)
        grant = await services.evaluator.assert_admin(ctx)
        assert grant.is_admin and not grant.bypass
        assert not await services.evaluator.has_permission(ctx, "workspace.delete")

    async def test_member_is_not_admin(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        member = principal()
        await services.memberships.add_member(workspace_id, member.principal_id, MEMBER_ROLE_ID)

        with pytest.raises(PermissionDeniedError):
            await services.evaluator.assert_admin(member.in_workspace(workspace_id))

    async def test_local_admin_context(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        local = AuthContext(principal_id=uuid.uuid4(), local_admin=True)

        ctx = local.in_workspace(workspace_id)
        assert await services.evaluator.has_permission(ctx, "workspace.delete")
        await services.evaluator.assert_admin(ctx)


class TestFixedRoleEvaluator:
    async def test_strategy_selected(self, fixed_services):
        assert isinstance(fixed_services.evaluator, FixedRoleEvaluator)

    async def test_admin_bypasses(self, fixed_services):
        admin = principal()
        workspace_id = await create_workspace(fixed_services, admin)
        ctx = admin.in_workspace(workspace_id)

        assert await fixed_services.evaluator.has_permission(ctx, "admin.access")
        assert await fixed_services.evaluator.has_permission(ctx, "member.role.change")

    async def test_overlay_extends_member(self, fixed_services):
        admin = principal()
        workspace_id = await create_workspace(fixed_services, admin)
        member = principal()
        await fixed_services.memberships.add_member(
            workspace_id, member.principal_id, MEMBER_ROLE_ID, permissions=["member.invite"]
        )

        ctx = member.in_workspace(workspace_id)
        perms = await fixed_services.evaluator.effective_permissions(ctx)
        assert "member.invite" in perms
        assert "member.remove" not in perms
        assert "task.own.update" in perms
        assert "task.update" not in perms

    async def test_viewer_read_only(self, fixed_services):
        admin = principal()
        workspace_id = await create_workspace(fixed_services, admin)
        viewer = principal()
        await fixed_services.memberships.add_member(
            workspace_id, viewer.principal_id, VIEWER_ROLE_ID
        )

        ctx = viewer.in_workspace(workspace_id)
        assert await fixed_services.evaluator.has_permission(ctx, "task.read")
        assert not await fixed_services.evaluator.has_permission(ctx, "task.create")


class TestOwnership:
    def test_policy_selection(self):
        assert isinstance(build_ownership_policy(OwnershipMode.ALWAYS), AlwaysOwner)
        assert isinstance(build_ownership_policy(OwnershipMode.FIELD), FieldBasedOwner)

    def test_field_based_owner(self):
        me = principal()
        policy = FieldBasedOwner()
        assert policy.is_owner(me, SimpleNamespace(created_by=me.principal_id, assigned_to=None))
        assert policy.is_owner(me, {"assigned_to": str(me.principal_id)})
        assert not policy.is_owner(me, SimpleNamespace(created_by=uuid.uuid4()))
        assert not policy.is_owner(me, None)

    def test_always_owner(self):
        assert AlwaysOwner().is_owner(principal(), None)

    async def test_can_access_own_resource(self, fixed_services):
        admin = principal()
        workspace_id = await create_workspace(fixed_services, admin)
        member = principal()
        await fixed_services.memberships.add_member(
            workspace_id, member.principal_id, MEMBER_ROLE_ID
        )
        ctx = member.in_workspace(workspace_id)
        mine = SimpleNamespace(created_by=member.principal_id)
        theirs = SimpleNamespace(created_by=admin.principal_id)

        evaluator = fixed_services.evaluator
        evaluator.ownership = FieldBasedOwner()
        assert await evaluator.can_access(ctx, "task.update", "task.own.update", mine)
        assert not await evaluator.can_access(ctx, "task.update", "task.own.update", theirs)
        assert await evaluator.can_access(ctx, "task.read", "task.own.read", theirs)
        assert not await evaluator.can_access(ctx, "task.delete", None, mine)

    async def test_single_tenant_owns_everything(self, fixed_services):
        admin = principal()
        workspace_id = await create_workspace(fixed_services, admin)
        member = principal()
        await fixed_services.memberships.add_member(
            workspace_id, member.principal_id, MEMBER_ROLE_ID
        )
        ctx = member.in_workspace(workspace_id)
        theirs = SimpleNamespace(created_by=admin.principal_id)

        assert isinstance(fixed_services.evaluator.ownership, AlwaysOwner)
        assert await fixed_services.evaluator.can_access(
            ctx, "task.update", "task.own.update", theirs
        )
