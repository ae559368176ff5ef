"""
HTTP surface tests: system endpoints, identity headers, the error envelope
and the invitation flow end to end.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import make_settings, open_services
from teamgate.core.rbac.catalogs import (
    ADMIN_ROLE_ID,
    MEMBER_ROLE_ID,
    OWNER_ROLE_ID,
    VIEWER_ROLE_ID,
)
from teamgate.main import create_app


@pytest.fixture
async def multi_tenant(tmp_path, clock, notifier):
    async with open_services(
        tmp_path, clock, notifier, deployment_mode="multi-tenant"
    ) as services:
        yield services


def _client(services) -> AsyncClient:
    app = create_app(services.settings, services)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(multi_tenant):
    async with _client(multi_tenant) as ac:
        yield ac


@pytest.fixture
async def local_client(services):
    async with _client(services) as ac:
        yield ac


def as_principal(principal_id: uuid.UUID, name: str = "Ada") -> dict:
    return {"X-Principal-Id": str(principal_id), "X-Principal-Name": name}


async def _create_workspace(client: AsyncClient, headers: dict, name: str = "Acme") -> str:
    response = await client.post("/api/v1/workspaces", json={"name": name}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


class TestSystem:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_ready(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    async def test_api_root(self, client):
        response = await client.get("/api/v1/")
        assert response.status_code == 200
        data = response.json()
        assert data["api"] == "v1"
        assert "/workspaces" in data["endpoints"]

    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

        generated = await client.get("/health")
        assert generated.headers["X-Request-ID"]


class TestErrorEnvelope:
    async def test_unauthenticated(self, client):
        response = await client.get("/api/v1/workspaces", headers={"X-Request-ID": "r-1"})
        assert response.status_code == 401
        assert response.json() == {
            "error": {
                "code": "authentication_required",
                "message": "Authentication required",
                "status": 401,
            },
            "request_id": "r-1",
        }

    async def test_malformed_principal(self, client):
        response = await client.get(
            "/api/v1/workspaces", headers={"X-Principal-Id": "not-a-uuid"}
        )
        assert response.status_code == 401

    async def test_forbidden_and_not_found(self, client):
        owner = as_principal(uuid.uuid4())
        workspace_id = await _create_workspace(client, owner)

        stranger = as_principal(uuid.uuid4())
        response = await client.get(f"/api/v1/workspaces/{workspace_id}", headers=stranger)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "permission_denied"

        response = await client.get(f"/api/v1/roles/{uuid.uuid4()}", headers=owner)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "role_not_found"

    async def test_admin_cannot_demote_owner(self, client):
        owner_id = uuid.uuid4()
        workspace_id = await _create_workspace(client, as_principal(owner_id))
        admin_id = uuid.uuid4()
        response = await client.post(
            f"/api/v1/workspaces/{workspace_id}/members",
            json={"principal_id": str(admin_id), "role_id": str(ADMIN_ROLE_ID)},
            headers=as_principal(owner_id),
        )
        assert response.status_code == 201

        response = await client.patch(
            f"/api/v1/workspaces/{workspace_id}/members/{owner_id}/role",
            json={"role_id": str(MEMBER_ROLE_ID)},
            headers=as_principal(admin_id),
        )
        assert response.status_code == 403
        response = await client.patch(
            f"/api/v1/workspaces/{workspace_id}/members/{admin_id}/role",
            json={"role_id": str(OWNER_ROLE_ID)},
            headers=as_principal(admin_id),
        )
        assert response.status_code == 403

    async def test_last_owner_conflict(self, local_client):
        # The local principal acts on a workspace owned by someone else
        owner_id = uuid.uuid4()
        workspace_id = await _create_workspace(local_client, as_principal(owner_id))

        response = await local_client.patch(
            f"/api/v1/workspaces/{workspace_id}/members/{owner_id}/role",
            json={"role_id": str(MEMBER_ROLE_ID)},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "last_owner_role_change"

        response = await local_client.delete(
            f"/api/v1/workspaces/{workspace_id}/members/{owner_id}"
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "last_owner"

    async def test_self_action(self, client):
        owner_id = uuid.uuid4()
        workspace_id = await _create_workspace(client, as_principal(owner_id))
        response = await client.patch(
            f"/api/v1/workspaces/{workspace_id}/members/{owner_id}/role",
            json={"role_id": str(MEMBER_ROLE_ID)},
            headers=as_principal(owner_id),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "self_action"

    async def test_duplicate_member_conflict(self, client):
        owner_id = uuid.uuid4()
        workspace_id = await _create_workspace(client, as_principal(owner_id))
        response = await client.post(
            f"/api/v1/workspaces/{workspace_id}/members",
            json={"principal_id": str(owner_id), "role_id": str(MEMBER_ROLE_ID)},
            headers=as_principal(owner_id),
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "already_member"

    async def test_validation_error(self, client):
        owner = as_principal(uuid.uuid4())
        workspace_id = await _create_workspace(client, owner)
        response = await client.post(
            f"/api/v1/workspaces/{workspace_id}/invitations",
            json={"email": "not-an-email"},
            headers=owner,
        )
        assert response.status_code == 422


class TestCatalogEndpoints:
    async def test_roles_and_permissions(self, client):
        headers = as_principal(uuid.uuid4())
        roles = (await client.get("/api/v1/roles", headers=headers)).json()["data"]
        assert [r["name"] for r in roles] == ["Admin", "Member", "Owner", "Viewer"]

        response = await client.get(f"/api/v1/roles/{VIEWER_ROLE_ID}/permissions", headers=headers)
        assert response.json()["permissions"] == [
            "member.view",
            "project.view",
            "task.view",
            "workspace.view",
        ]

        response = await client.get("/api/v1/permissions?category=workspace", headers=headers)
        assert [p["key"] for p in response.json()["data"]] == [
            "workspace.delete",
            "workspace.edit",
            "workspace.transfer",
            "workspace.view",
        ]


class TestInvitationFlow:
    async def test_invite_preview_accept(self, client, notifier):
        owner_id = uuid.uuid4()
        owner = as_principal(owner_id, "Grace")
        workspace_id = await _create_workspace(client, owner, name="Research")

        response = await client.post(
            f"/api/v1/workspaces/{workspace_id}/invitations",
            json={"email": "Ada@Example.com", "role_id": str(VIEWER_ROLE_ID)},
            headers=owner,
        )
        assert response.status_code == 201
        created = response.json()
        assert created["email"] == "ada@example.com"
        assert created["status"] == "pending"
        assert notifier.sent[0]["accept_url"] == created["accept_url"]

        response = await client.post(
            f"/api/v1/workspaces/{workspace_id}/invitations",
            json={"email": "ada@example.com"},
            headers=owner,
        )
        assert response.status_code == 409

        # Preview needs no identity
        preview = await client.get(f"/api/v1/workspace-invitations/{created['token']}")
        assert preview.status_code == 200
        assert preview.json()["workspace_name"] == "Research"
        assert preview.json()["role_name"] == "Viewer"

        joiner_id = uuid.uuid4()
        joiner = as_principal(joiner_id)
        response = await client.post(
            f"/api/v1/workspace-invitations/{created['token']}/accept", headers=joiner
        )
        assert response.status_code == 200
        assert response.json() == {
            "workspace_id": workspace_id,
            "role_id": str(VIEWER_ROLE_ID),
            "role_name": "Viewer",
        }

        response = await client.post(
            f"/api/v1/workspace-invitations/{created['token']}/accept",
            headers=as_principal(uuid.uuid4()),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invitation_invalid"

        response = await client.get(
            f"/api/v1/workspaces/{workspace_id}/members/me/permissions", headers=joiner
        )
        assert response.json()["role_name"] == "Viewer"
        assert response.json()["is_admin"] is False

    async def test_accept_requires_identity(self, client):
        owner = as_principal(uuid.uuid4())
        workspace_id = await _create_workspace(client, owner)
        created = (
            await client.post(
                f"/api/v1/workspaces/{workspace_id}/invitations",
                json={"email": "ada@example.com"},
                headers=owner,
            )
        ).json()

        response = await client.post(f"/api/v1/workspace-invitations/{created['token']}/accept")
        assert response.status_code == 401

    async def test_expired_accept(self, client, clock):
        owner = as_principal(uuid.uuid4())
        workspace_id = await _create_workspace(client, owner)
        created = (
            await client.post(
                f"/api/v1/workspaces/{workspace_id}/invitations",
                json={"email": "ada@example.com"},
                headers=owner,
            )
        ).json()
        clock.advance(days=30)

        response = await client.post(
            f"/api/v1/workspace-invitations/{created['token']}/accept",
            headers=as_principal(uuid.uuid4()),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invitation_expired"

        listed = await client.get(
            f"/api/v1/workspaces/{workspace_id}/invitations", headers=owner
        )
        assert listed.json()["data"][0]["status"] == "expired"

    async def test_revoke(self, client):
        owner = as_principal(uuid.uuid4())
        workspace_id = await _create_workspace(client, owner)
        created = (
            await client.post(
                f"/api/v1/workspaces/{workspace_id}/invitations",
                json={"email": "ada@example.com"},
                headers=owner,
            )
        ).json()

        response = await client.delete(
            f"/api/v1/workspaces/{workspace_id}/invitations/{created['id']}", headers=owner
        )
        assert response.status_code == 200
        assert response.json()["status"] == "revoked"


class TestSingleTenant:
    async def test_local_principal_without_headers(self, local_client, services):
        workspace_id = await _create_workspace(local_client, {})

        members = (
            await local_client.get(f"/api/v1/workspaces/{workspace_id}/members")
        ).json()["data"]
        assert [m["principal_id"] for m in members] == [
            str(services.settings.local_principal_id)
        ]

        response = await local_client.get(
            f"/api/v1/workspaces/{workspace_id}/members/me/permissions"
        )
        assert response.json()["is_admin"] is True

    async def test_headers_still_identify(self, local_client):
        stranger = as_principal(uuid.uuid4())
        workspace_id = await _create_workspace(local_client, {})
        response = await local_client.get(
            f"/api/v1/workspaces/{workspace_id}", headers=stranger
        )
        assert response.status_code == 403


class TestAppFactory:
    async def test_uses_database_from_given_settings(self, tmp_path):
        settings = make_settings(tmp_path / "mine")
        app = create_app(settings)

        async with app.router.lifespan_context(app):
            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as ac:
                response = await ac.get("/api/v1/roles")
                assert response.status_code == 200
                assert len(response.json()["data"]) == 4

        assert (tmp_path / "mine" / "teamgate-catalog.db").exists()
        assert not (tmp_path / "teamgate.db").exists()
