"""End-to-end tests of the HTTP API over an in-process ASGI transport."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import Depends, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select, update

from config.settings import Settings
from database.models import Role
from rbac.dependencies import RequirePermission
from rbac.exceptions import ResolutionError
from rbac.guard import AuthorizationDecision, RouteGuard
from rbac.jwt import create_access_token
from rbac.permissions import Action
from web.app import create_app


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.username)}"}


@pytest.fixture
def app(session_factory, seeded, permission_cache):
    return create_app(Settings(), session_factory=session_factory, cache=permission_cache)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def _role_id(session_factory, name):
    async with session_factory() as session:
        return (await session.execute(select(Role.id).where(Role.name == name))).scalar_one()


class TestEnvelope:
    """Uniform response shape."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, client):
        response = await client.get("/api/roles")
        body = response.json()
        assert response.status_code == 401
        assert body["success"] is False
        assert body["code"] == "NOT_AUTHENTICATED"
        assert body["timestamp"].endswith("Z")
        assert body["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_invalid_token_is_401(self, client):
        response = await client.get("/api/roles", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client, seeded):
        response = await client.get(
            "/api/permissions/me",
            headers={**auth(seeded["viewer"]), "X-Request-ID": "req-123"},
        )
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_success_envelope(self, client, seeded):
        response = await client.get("/api/roles", headers=auth(seeded["admin"]))
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["message"] == "Roles retrieved"
        assert body["data"]["total"] == 5

    @pytest.mark.asyncio
    async def test_validation_error_is_400(self, client, seeded):
        response = await client.post(
            "/api/roles", json={"name": "Analysts", "level": "high"}, headers=auth(seeded["admin"])
        )
        body = response.json()
        assert response.status_code == 400
        assert body["code"] == "VALIDATION_ERROR"
        assert any("level" in e for e in body["errors"])

    @pytest.mark.asyncio
    async def test_unknown_route_uses_envelope(self, client):
        response = await client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json()["success"] is False


class TestRouteGuarding:
    """Permission checks on routes."""

    @pytest.mark.asyncio
    async def test_missing_permission_is_403(self, client, seeded):
        response = await client.get("/api/roles", headers=auth(seeded["viewer"]))
        body = response.json()
        assert response.status_code == 403
        assert body["code"] == "PERMISSION_DENIED"
        assert body["message"] == "Missing permission: roles_read"

    @pytest.mark.asyncio
    async def test_inactive_role_is_403(self, client, seeded, session_factory):
        async with session_factory() as session:
            await session.execute(update(Role).where(Role.name == "editor").values(is_active=False))
            await session.commit()

        response = await client.get("/api/campaigns", headers=auth(seeded["editor"]))
        assert response.status_code == 403
        assert response.json()["code"] == "ROLE_INACTIVE"

    @pytest.mark.asyncio
    async def test_resolution_failure_is_500(self, app, client, seeded):
        resolver = MagicMock()
        resolver.resolve_effective_permissions = AsyncMock(side_effect=ResolutionError("db down"))
        app.state.route_guard = RouteGuard(resolver)

        response = await client.get("/api/campaigns", headers=auth(seeded["editor"]))
        body = response.json()
        assert response.status_code == 500
        assert body["code"] == "RESOLUTION_ERROR"
        assert "db down" not in body["message"]

    @pytest.mark.asyncio
    async def test_my_permissions(self, client, seeded):
        response = await client.get("/api/permissions/me", headers=auth(seeded["editor"]))
        data = response.json()["data"]
        assert data["is_elevated"] is False
        assert "campaigns_read" in data["permissions"]
        assert "read" in data["grouped"]["campaigns"]
        assert data["user"]["role"]["name"] == "editor"


class TestOwnedResources:
    """Ownership-scoped CRUD over HTTP."""

    async def _create_campaign(self, client, user, **fields):
        payload = {"name": "Spring launch", **fields}
        response = await client.post("/api/campaigns", json=payload, headers=auth(user))
        assert response.status_code == 201
        return response.json()["data"]

    @pytest.mark.asyncio
    async def test_create_stamps_owner(self, client, seeded):
        campaign = await self._create_campaign(client, seeded["editor"], created_by=999)
        assert campaign["created_by"] == seeded["editor"].id
        assert campaign["status"] == "draft"

    @pytest.mark.asyncio
    async def test_foreign_record_is_403_not_404(self, client, seeded):
        campaign = await self._create_campaign(client, seeded["editor"])

        response = await client.get(f"/api/campaigns/{campaign['id']}", headers=auth(seeded["viewer"]))
        assert response.status_code == 403
        assert response.json()["code"] == "OWNERSHIP_VIOLATION"

        response = await client.get("/api/campaigns/99999", headers=auth(seeded["viewer"]))
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_is_scoped(self, client, seeded):
        await self._create_campaign(client, seeded["editor"], name="Mine")
        await self._create_campaign(client, seeded["manager"], name="Theirs")

        own = await client.get("/api/campaigns", headers=auth(seeded["editor"]))
        everything = await client.get("/api/campaigns", headers=auth(seeded["admin"]))

        assert [c["name"] for c in own.json()["data"]["items"]] == ["Mine"]
        assert own.json()["data"]["pagination"]["total"] == 1
        assert everything.json()["data"]["pagination"]["total"] == 2

    @pytest.mark.asyncio
    async def test_update_never_changes_owner(self, client, seeded):
        campaign = await self._create_campaign(client, seeded["editor"])

        response = await client.put(
            f"/api/campaigns/{campaign['id']}",
            json={"status": "active", "created_by": seeded["admin"].id},
            headers=auth(seeded["editor"]),
        )
        data = response.json()["data"]
        assert response.status_code == 200
        assert data["status"] == "active"
        assert data["created_by"] == seeded["editor"].id

    @pytest.mark.asyncio
    async def test_admin_can_delete_any(self, client, seeded):
        campaign = await self._create_campaign(client, seeded["editor"])

        response = await client.delete(f"/api/campaigns/{campaign['id']}", headers=auth(seeded["admin"]))
        assert response.status_code == 200
        assert response.json()["data"] is None

    @pytest.mark.asyncio
    async def test_method_maps_to_action(self, client, seeded):
        """Viewers hold campaigns_read but not campaigns_create."""
        response = await client.post(
            "/api/campaigns", json={"name": "Nope"}, headers=auth(seeded["viewer"])
        )
        assert response.status_code == 403
        assert response.json()["message"] == "Missing permission: campaigns_create"

    @pytest.mark.asyncio
    async def test_null_for_required_column_is_400(self, client, seeded):
        campaign = await self._create_campaign(client, seeded["editor"])

        response = await client.put(
            f"/api/campaigns/{campaign['id']}", json={"name": None}, headers=auth(seeded["editor"])
        )
        body = response.json()
        assert response.status_code == 400
        assert body["code"] == "VALIDATION_ERROR"
        assert any("name cannot be null" in e for e in body["errors"])

        # Nullable columns still accept an explicit null
        response = await client.put(
            f"/api/campaigns/{campaign['id']}", json={"budget": None}, headers=auth(seeded["editor"])
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Spring launch"

    @pytest.mark.asyncio
    async def test_missing_reference_is_404(self, client, seeded):
        response = await client.post(
            "/api/campaigns", json={"name": "x", "brand_id": 4242}, headers=auth(seeded["editor"])
        )
        body = response.json()
        assert response.status_code == 404
        assert body["message"] == "Brand not found"

    @pytest.mark.asyncio
    async def test_reference_to_foreign_row_is_403(self, client, seeded):
        theirs = await client.post("/api/brands", json={"name": "Theirs"}, headers=auth(seeded["manager"]))
        mine = await client.post("/api/brands", json={"name": "Mine"}, headers=auth(seeded["editor"]))
        their_brand = theirs.json()["data"]["id"]
        my_brand = mine.json()["data"]["id"]

        response = await client.post(
            "/api/campaigns", json={"name": "x", "brand_id": their_brand}, headers=auth(seeded["editor"])
        )
        assert response.status_code == 403
        assert response.json()["code"] == "OWNERSHIP_VIOLATION"

        campaign = await self._create_campaign(client, seeded["editor"], brand_id=my_brand)
        assert campaign["brand_id"] == my_brand

        response = await client.put(
            f"/api/campaigns/{campaign['id']}",
            json={"brand_id": their_brand},
            headers=auth(seeded["editor"]),
        )
        assert response.status_code == 403

        # Elevated callers may link any row
        response = await client.post(
            "/api/campaigns", json={"name": "y", "brand_id": their_brand}, headers=auth(seeded["admin"])
        )
        assert response.status_code == 201


class TestDecisionOnRequest:
    """The guard leaves its decision on request.state for handlers."""

    @pytest.fixture
    def decision_app(self, app):
        @app.get("/api/decision-echo")
        async def decision_echo(
            request: Request,
            decision: AuthorizationDecision = Depends(RequirePermission("campaigns", Action.READ)),
        ):
            state = request.state.rbac
            return {
                "same": state is decision,
                "granted": state.granted,
                "permission": str(state.permission),
                "permissions": sorted(str(p) for p in state.permissions),
                "elevated": state.elevated,
                "can_delete": state.has_permission("campaigns_delete"),
                "can_update": state.has_permission("campaigns_update"),
            }

        return app

    @pytest_asyncio.fixture
    async def decision_client(self, decision_app):
        async with AsyncClient(transport=ASGITransport(app=decision_app), base_url="http://test") as client:
            yield client

    @pytest.mark.asyncio
    async def test_non_elevated_decision(self, decision_client, seeded):
        response = await decision_client.get("/api/decision-echo", headers=auth(seeded["editor"]))
        data = response.json()
        assert response.status_code == 200
        assert data["same"] is True
        assert data["granted"] is True
        assert data["permission"] == "campaigns_read"
        assert "campaigns_read" in data["permissions"]
        assert data["elevated"] is False
        assert data["can_update"] is True
        assert data["can_delete"] is False

    @pytest.mark.asyncio
    async def test_elevated_decision(self, decision_client, seeded):
        response = await decision_client.get("/api/decision-echo", headers=auth(seeded["admin"]))
        data = response.json()
        assert data["granted"] is True
        assert data["elevated"] is True
        assert data["can_delete"] is True


class TestPermissionCheckApi:
    """POST /permissions/check."""

    async def _check(self, client, caller, user, key):
        return await client.post(
            "/api/permissions/check",
            json={"user_id": user.id, "permission_key": key},
            headers=auth(caller),
        )

    @pytest.mark.asyncio
    async def test_reflects_role_permissions(self, client, seeded):
        response = await self._check(client, seeded["admin"], seeded["editor"], "campaigns_update")
        assert response.status_code == 200
        assert response.json()["data"] == {
            "user_id": seeded["editor"].id,
            "permission_key": "campaigns_update",
            "has_permission": True,
        }

        response = await self._check(client, seeded["admin"], seeded["editor"], "campaigns_delete")
        assert response.json()["data"]["has_permission"] is False

    @pytest.mark.asyncio
    async def test_elevated_user_holds_everything(self, client, seeded):
        response = await self._check(client, seeded["admin"], seeded["admin"], "roles_manage")
        assert response.json()["data"]["has_permission"] is True

    @pytest.mark.asyncio
    async def test_bad_input(self, client, seeded):
        response = await self._check(client, seeded["admin"], seeded["editor"], "nonsense")
        assert response.status_code == 400

        response = await client.post(
            "/api/permissions/check",
            json={"user_id": 99999, "permission_key": "campaigns_read"},
            headers=auth(seeded["admin"]),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_permissions_read(self, client, seeded):
        response = await self._check(client, seeded["viewer"], seeded["viewer"], "campaigns_read")
        assert response.status_code == 403
        assert response.json()["message"] == "Missing permission: permissions_read"


class TestRoleManagementApi:
    """Role and permission administration endpoints."""

    @pytest.mark.asyncio
    async def test_system_role_delete_rejected(self, client, seeded, session_factory):
        role_id = await _role_id(session_factory, "super_admin")
        response = await client.delete(f"/api/roles/{role_id}", headers=auth(seeded["super_admin"]))
        assert response.status_code == 403
        assert response.json()["code"] == "INVALID_ROLE_MUTATION"

        response = await client.get(f"/api/roles/{role_id}", headers=auth(seeded["super_admin"]))
        assert response.json()["data"]["is_system_role"] is True

    @pytest.mark.asyncio
    async def test_create_and_replace_permissions(self, client, seeded):
        headers = auth(seeded["admin"])
        created = await client.post("/api/roles", json={"name": "Reporters", "level": 2}, headers=headers)
        assert created.status_code == 201
        role_id = created.json()["data"]["id"]

        response = await client.put(
            f"/api/roles/{role_id}/permissions",
            json={"permissions": ["reports_read", "dashboard_view"], "reason": "setup"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["permissions"] == ["dashboard_view", "reports_read"]

        response = await client.get(f"/api/roles/{role_id}/permissions", headers=headers)
        modules = [m["module_name"] for m in response.json()["data"]["modules"]]
        assert modules == ["dashboard", "reports"]

    @pytest.mark.asyncio
    async def test_null_is_active_is_400(self, client, seeded):
        headers = auth(seeded["admin"])
        created = await client.post("/api/roles", json={"name": "Auditors", "level": 2}, headers=headers)
        role_id = created.json()["data"]["id"]

        response = await client.put(f"/api/roles/{role_id}", json={"is_active": None}, headers=headers)
        body = response.json()
        assert response.status_code == 400
        assert body["code"] == "VALIDATION_ERROR"
        assert "is_active must be true or false" in body["errors"]

    @pytest.mark.asyncio
    async def test_duplicate_name_is_409(self, client, seeded):
        headers = auth(seeded["admin"])
        await client.post("/api/roles", json={"name": "Auditors", "level": 2}, headers=headers)
        response = await client.post("/api/roles", json={"name": "auditors", "level": 2}, headers=headers)
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_reassignment_takes_effect_immediately(self, client, seeded, session_factory):
        viewer = seeded["viewer"]
        assert (await client.post("/api/campaigns", json={"name": "x"}, headers=auth(viewer))).status_code == 403

        editor_role_id = await _role_id(session_factory, "editor")
        response = await client.put(
            f"/api/users/{viewer.id}/role",
            json={"role_id": editor_role_id, "reason": "promotion"},
            headers=auth(seeded["admin"]),
        )
        assert response.status_code == 200

        assert (await client.post("/api/campaigns", json={"name": "x"}, headers=auth(viewer))).status_code == 201

    @pytest.mark.asyncio
    async def test_escalation_rejected(self, client, seeded, session_factory):
        admin_role_id = await _role_id(session_factory, "admin")
        # Managers hold users_read only, so grant users_update to reach the service check
        manager_role_id = await _role_id(session_factory, "manager")
        await client.post(
            f"/api/permissions/roles/{manager_role_id}/grant",
            json={"permission": "users_update"},
            headers=auth(seeded["super_admin"]),
        )

        response = await client.put(
            f"/api/users/{seeded['viewer'].id}/role",
            json={"role_id": admin_role_id},
            headers=auth(seeded["manager"]),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "PRIVILEGE_ESCALATION"

    @pytest.mark.asyncio
    async def test_audit_log(self, client, seeded, session_factory):
        role_id = await _role_id(session_factory, "manager")
        headers = auth(seeded["super_admin"])
        await client.post(
            f"/api/permissions/roles/{role_id}/grant",
            json={"permission": "roles_read", "reason": "review access"},
            headers=headers,
        )

        response = await client.get("/api/permissions/audit?action=grant&limit=500", headers=headers)
        data = response.json()["data"]
        assert data["pagination"]["limit"] == 100
        assert data["entries"][0]["reason"] == "review access"

        response = await client.get("/api/permissions/audit?action=bogus", headers=headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_user_permissions_lookup(self, client, seeded):
        response = await client.get(
            f"/api/permissions/users/{seeded['admin'].id}", headers=auth(seeded["admin"])
        )
        data = response.json()["data"]
        assert data["is_elevated"] is True
        assert "roles_delete" in data["permissions"]

        response = await client.get("/api/permissions/users/99999", headers=auth(seeded["admin"]))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_module_deactivation_applies_at_once(self, client, seeded, session_factory):
        headers = auth(seeded["editor"])
        assert (await client.get("/api/brands", headers=headers)).status_code == 200

        modules = await client.get("/api/permissions/modules", headers=auth(seeded["admin"]))
        brands = next(m for m in modules.json()["data"]["modules"] if m["name"] == "brands")
        response = await client.patch(
            f"/api/permissions/modules/{brands['id']}",
            json={"is_active": False},
            headers=auth(seeded["admin"]),
        )
        assert response.status_code == 200

        assert (await client.get("/api/brands", headers=headers)).status_code == 403
