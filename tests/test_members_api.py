"""
HTTP tests for the organization member endpoints.

Tests cover:
- Authentication and role gates
- Query and body validation codes (INVALID_ROLE, INVALID_STATUS, INVALID_SORT)
- Error translation (401, 403, 404, 501) and response shapes
"""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

BASE = "/api/v1/organizations/members"


@pytest.fixture
async def org(seed):
    org_id = await seed.organization()
    owner = await seed.member(org_id, "owner", email="owner@example.com")
    admin = await seed.member(org_id, "admin", email="admin@example.com")
    user = await seed.member(org_id, "user", email="user@example.com")
    return {"id": org_id, "owner": owner, "admin": admin, "user": user}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient, org):
        response = await client.get(BASE)
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient, org):
        response = await client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_session_cookie(self, client: AsyncClient, org, auth_headers):
        token = auth_headers(org["owner"])["Authorization"].split(" ", 1)[1]
        response = await client.get(BASE, headers={"Cookie": f"rita_session={token}"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_plain_user_is_forbidden(self, client: AsyncClient, org, auth_headers):
        response = await client.get(BASE, headers=auth_headers(org["user"]))
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    async def test_inactive_member_is_forbidden(self, client: AsyncClient, seed, org, auth_headers):
        dormant = await seed.member(org["id"], "owner", is_active=False)
        response = await client.get(BASE, headers=auth_headers(dormant))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_active_org_claim_selects_organization(
        self, client: AsyncClient, seed, org, auth_headers
    ):
        other = await seed.organization("Other")
        response = await client.get(BASE, headers=auth_headers(org["owner"], other))
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# List / details
# ---------------------------------------------------------------------------

class TestListEndpoint:

    @pytest.mark.asyncio
    async def test_list_shape(self, client: AsyncClient, org, auth_headers):
        response = await client.get(BASE, headers=auth_headers(org["admin"]))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        first = body["members"][0]
        assert set(first) == {
            "id",
            "email",
            "firstName",
            "lastName",
            "role",
            "isActive",
            "joinedAt",
            "conversationsCount",
        }

    @pytest.mark.asyncio
    async def test_sort_and_filter(self, client: AsyncClient, org, auth_headers):
        response = await client.get(
            BASE,
            params={"sortBy": "email", "sortOrder": "asc"},
            headers=auth_headers(org["owner"]),
        )
        emails = [m["email"] for m in response.json()["members"]]
        assert emails == ["admin@example.com", "owner@example.com", "user@example.com"]

        response = await client.get(
            BASE, params={"role": "admin"}, headers=auth_headers(org["owner"])
        )
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params, code",
        [
            ({"role": "superuser"}, "INVALID_ROLE"),
            ({"sortBy": "name"}, "INVALID_SORT"),
            ({"sortOrder": "sideways"}, "INVALID_SORT_ORDER"),
        ],
    )
    async def test_bad_query(self, client: AsyncClient, org, auth_headers, params, code):
        response = await client.get(BASE, params=params, headers=auth_headers(org["owner"]))
        assert response.status_code == 400
        assert response.json()["code"] == code

    @pytest.mark.asyncio
    async def test_details_and_not_found(self, client: AsyncClient, org, auth_headers):
        response = await client.get(f"{BASE}/{org['user']}", headers=auth_headers(org["owner"]))
        assert response.status_code == 200
        assert response.json()["member"]["email"] == "user@example.com"

        response = await client.get(f"{BASE}/{uuid.uuid4()}", headers=auth_headers(org["owner"]))
        assert response.status_code == 404
        assert response.json() == {"error": "Member not found", "code": "MEMBER_NOT_FOUND"}


# ---------------------------------------------------------------------------
# Role
# ---------------------------------------------------------------------------

class TestRoleEndpoint:

    @pytest.mark.asyncio
    async def test_owner_changes_role(self, client: AsyncClient, org, auth_headers, notifier):
        response = await client.patch(
            f"{BASE}/{org['user']}/role",
            json={"role": "admin"},
            headers=auth_headers(org["owner"]),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["member"]["role"] == "admin"
        assert notifier.types() == ["member_role_updated"]

    @pytest.mark.asyncio
    async def test_admin_cannot_change_roles(self, client: AsyncClient, org, auth_headers):
        response = await client.patch(
            f"{BASE}/{org['user']}/role",
            json={"role": "admin"},
            headers=auth_headers(org["admin"]),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"role": "root"}, {}, {"role": None}])
    async def test_invalid_role(self, client: AsyncClient, org, auth_headers, payload):
        response = await client.patch(
            f"{BASE}/{org['user']}/role", json=payload, headers=auth_headers(org["owner"])
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ROLE"

    @pytest.mark.asyncio
    async def test_self_change(self, client: AsyncClient, org, auth_headers):
        response = await client.patch(
            f"{BASE}/{org['owner']}/role",
            json={"role": "user"},
            headers=auth_headers(org["owner"]),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "CANNOT_MODIFY_SELF"


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

class TestStatusEndpoint:

    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_owner(self, client: AsyncClient, org, auth_headers):
        response = await client.patch(
            f"{BASE}/{org['owner']}/status",
            json={"isActive": False},
            headers=auth_headers(org["admin"]),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    async def test_admin_deactivates_user(self, client: AsyncClient, org, auth_headers):
        response = await client.patch(
            f"{BASE}/{org['user']}/status",
            json={"isActive": False},
            headers=auth_headers(org["admin"]),
        )
        assert response.status_code == 200
        assert response.json()["member"]["isActive"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["false", 0, None])
    async def test_non_boolean_status(self, client: AsyncClient, org, auth_headers, value):
        response = await client.patch(
            f"{BASE}/{org['user']}/status",
            json={"isActive": value},
            headers=auth_headers(org["owner"]),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_STATUS"

    @pytest.mark.asyncio
    async def test_owner_demotes_peer_owner(self, client: AsyncClient, seed, auth_headers):
        # The acting owner stays active, so the peer is never the last owner
        org_id = await seed.organization()
        sole = await seed.member(org_id, "owner")
        peer = await seed.member(org_id, "owner")
        response = await client.patch(
            f"{BASE}/{peer}/status", json={"isActive": False}, headers=auth_headers(sole)
        )
        assert response.status_code == 200

        response = await client.patch(
            f"{BASE}/{peer}/role", json={"role": "user"}, headers=auth_headers(sole)
        )
        assert response.status_code == 200


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------

class TestRemoveEndpoint:

    @pytest.mark.asyncio
    async def test_remove_user(self, client: AsyncClient, org, auth_headers):
        response = await client.delete(f"{BASE}/{org['user']}", headers=auth_headers(org["admin"]))
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["removedMember"] == {
            "id": str(org["user"]),
            "email": "user@example.com",
            "role": "user",
        }

        response = await client.get(f"{BASE}/{org['user']}", headers=auth_headers(org["owner"]))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove_self(self, client: AsyncClient, org, auth_headers):
        response = await client.delete(f"{BASE}/{org['admin']}", headers=auth_headers(org["admin"]))
        assert response.status_code == 400
        assert response.json()["code"] == "CANNOT_REMOVE_SELF"

    @pytest.mark.asyncio
    async def test_admin_cannot_remove_owner(self, client: AsyncClient, org, auth_headers):
        response = await client.delete(f"{BASE}/{org['owner']}", headers=auth_headers(org["admin"]))
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Phase 2
# ---------------------------------------------------------------------------

class TestPermanentDeletion:

    @pytest.mark.asyncio
    async def test_hard_delete_not_implemented(self, client: AsyncClient, org, auth_headers):
        response = await client.delete(
            f"{BASE}/{org['user']}/permanent", headers=auth_headers(org["owner"])
        )
        assert response.status_code == 501
        body = response.json()
        assert body["code"] == "NOT_IMPLEMENTED"
        assert "Phase 2" in body["message"]

    @pytest.mark.asyncio
    async def test_hard_delete_requires_owner(self, client: AsyncClient, org, auth_headers):
        response = await client.delete(
            f"{BASE}/{org['user']}/permanent", headers=auth_headers(org["admin"])
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_self_delete_route_is_not_a_user_id(self, client: AsyncClient, org, auth_headers):
        response = await client.delete(f"{BASE}/self/permanent", headers=auth_headers(org["user"]))
        assert response.status_code == 501
        assert response.json()["error"] == "Delete own account not implemented"
