"""
Tests for the role/permission catalog service.
"""

from __future__ import annotations

import pytest

from conftest import create_workspace, principal
from teamgate.core.database import transaction
from teamgate.core.errors import (
    FixedRoleCatalogError,
    PermissionNotFoundError,
    RoleInUseError,
    RoleNameTakenError,
    RoleNotFoundError,
    SystemRoleDeleteError,
    SystemRoleImmutableError,
)
from teamgate.core.rbac.catalogs import ADMIN_ROLE_ID, MEMBER_ROLE_ID, OWNER_ROLE_ID
from teamgate.services import roles as role_service


class TestSeeding:
    async def test_system_roles_seeded(self, services):
        async with transaction(services.sessions) as session:
            roles = await role_service.list_roles(session)
        assert [r.name for r in roles] == ["Admin", "Member", "Owner", "Viewer"]
        assert all(r.is_system for r in roles)

    async def test_sync_is_idempotent(self, services):
        await services.sync_catalog()
        async with transaction(services.sessions) as session:
            perms = await role_service.list_permissions(session)
            owner_keys = await role_service.get_role_permissions(session, OWNER_ROLE_ID)
        assert len(perms) == len(services.catalog.permissions)
        assert set(owner_keys) == services.catalog.keys

    async def test_fixed_flavor_has_no_owner(self, fixed_services):
        async with transaction(fixed_services.sessions) as session:
            roles = await role_service.list_roles(session)
            with pytest.raises(RoleNotFoundError):
                await role_service.get_role(session, OWNER_ROLE_ID)
        assert [r.name for r in roles] == ["Admin", "Member", "Viewer"]


class TestPermissions:
    async def test_list_by_prefix(self, services):
        async with transaction(services.sessions) as session:
            perms = await role_service.list_permissions_by_prefix(session, "member.")
        assert [p.key for p in perms] == [
            "member.invite",
            "member.remove",
            "member.role.assign",
            "member.view",
        ]

    async def test_prefix_wildcards_are_literal(self, services):
        async with transaction(services.sessions) as session:
            assert await role_service.list_permissions_by_prefix(session, "%") == []
            assert await role_service.list_permissions_by_prefix(session, "task_") == []

    async def test_get_by_key_and_id(self, services):
        async with transaction(services.sessions) as session:
            perm = await role_service.get_permission_by_key(session, "task.view")
            same = await role_service.get_permission(session, perm.id)
            with pytest.raises(PermissionNotFoundError):
                await role_service.get_permission_by_key(session, "task.fly")
        assert same.key == "task.view"

    async def test_role_has_permission(self, services):
        async with transaction(services.sessions) as session:
            assert await role_service.role_has_permission(session, MEMBER_ROLE_ID, "task.create")
            assert not await role_service.role_has_permission(
                session, MEMBER_ROLE_ID, "member.invite"
            )


class TestCustomRoles:
    async def test_create_with_permissions(self, services):
        async with transaction(services.sessions) as session:
            role = await role_service.create_role(
                session,
                services.catalog,
                "Reviewer",
                "Reviews tasks",
                permissions=["task.view", "task.status.change"],
            )
        async with transaction(services.sessions) as session:
            keys = await role_service.get_role_permissions(session, role.id)
            roles = await role_service.list_roles(session)
        assert not role.is_system
        assert keys == ["task.status.change", "task.view"]
        # Custom roles sort after system roles
        assert roles[-1].name == "Reviewer"

    async def test_duplicate_name(self, services):
        with pytest.raises(RoleNameTakenError):
            async with transaction(services.sessions) as session:
                await role_service.create_role(session, services.catalog, "Owner")

    async def test_unknown_permission_rolls_back(self, services):
        with pytest.raises(PermissionNotFoundError):
            async with transaction(services.sessions) as session:
                await role_service.create_role(
                    session, services.catalog, "Broken", permissions=["nope.nope"]
                )
        async with transaction(services.sessions) as session:
            with pytest.raises(RoleNotFoundError):
                await role_service.get_role_by_name(session, "Broken")

    async def test_partial_update_keeps_omitted_fields(self, services, clock):
        async with transaction(services.sessions) as session:
            role = await role_service.create_role(
                session, services.catalog, "Reviewer", "Reviews tasks"
            )
        async with transaction(services.sessions) as session:
            clock.advance(hours=1)
            updated = await role_service.update_role(
                session, role.id, name="Auditor", clock=clock
            )
        assert updated.name == "Auditor"
        assert updated.description == "Reviews tasks"
        assert updated.updated_at == clock.now()

    async def test_system_roles_are_immutable(self, services):
        async with transaction(services.sessions) as session:
            with pytest.raises(SystemRoleImmutableError):
                await role_service.update_role(session, ADMIN_ROLE_ID, description="x")
            with pytest.raises(SystemRoleImmutableError):
                await role_service.set_role_permissions(session, ADMIN_ROLE_ID, ["task.view"])
            with pytest.raises(SystemRoleDeleteError):
                await role_service.delete_role(session, OWNER_ROLE_ID)

    async def test_delete_custom_role(self, services):
        async with transaction(services.sessions) as session:
            role = await role_service.create_role(
                session, services.catalog, "Temp", permissions=["task.view"]
            )
        async with transaction(services.sessions) as session:
            await role_service.delete_role(session, role.id)
        async with transaction(services.sessions) as session:
            with pytest.raises(RoleNotFoundError):
                await role_service.get_role_permissions(session, role.id)

    async def test_delete_blocked_while_assigned(self, services):
        owner = principal()
        workspace_id = await create_workspace(services, owner)
        async with transaction(services.sessions) as session:
            role = await role_service.create_role(
                session, services.catalog, "Contractor", permissions=["task.view"]
            )
        await services.memberships.add_member(workspace_id, principal().principal_id, role.id)

        with pytest.raises(RoleInUseError):
            async with transaction(services.sessions) as session:
                await role_service.delete_role(session, role.id)

    async def test_fixed_catalog_is_closed(self, fixed_services):
        async with transaction(fixed_services.sessions) as session:
            with pytest.raises(FixedRoleCatalogError):
                await role_service.create_role(session, fixed_services.catalog, "Custom")
