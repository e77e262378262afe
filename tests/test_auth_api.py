"""
HTTP tests for the password reset flow.

Tests cover:
- forgot-password answers the same for known and unknown e-mails
- the reset link handed to the Actions platform
- undeliverable tokens are withdrawn
- reset-password status codes (400, 410, 502) and the completion webhook
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from httpx import AsyncClient

from app.core.webhooks import PASSWORD_RESET_COMPLETED, PASSWORD_RESET_REQUESTED
from app.models.base import utcnow
from app.services import password_reset
from rita_shared.schemas.auth import GENERIC_RESET_MESSAGE

GENERIC = {"success": True, "message": GENERIC_RESET_MESSAGE}


def _token_from(webhooks) -> str:
    _, payload = webhooks.calls[-1]
    return payload["reset_link"].split("token=", 1)[1]


# ---------------------------------------------------------------------------
# Forgot password
# ---------------------------------------------------------------------------

class TestForgotPassword:

    @pytest.mark.asyncio
    async def test_known_email(self, client: AsyncClient, seed, webhooks):
        await seed.user("alice@example.com")

        response = await client.post("/auth/forgot-password", json={"email": "alice@example.com"})

        assert response.status_code == 200
        assert response.json() == GENERIC
        assert webhooks.actions() == [PASSWORD_RESET_REQUESTED]
        _, payload = webhooks.calls[0]
        assert payload["user_email"] == "alice@example.com"
        assert payload["reset_link"].startswith("https://app.test/reset-password?token=")
        assert len(_token_from(webhooks)) == 64
        assert "expires_at" in payload

    @pytest.mark.asyncio
    async def test_unknown_email_looks_the_same(self, client: AsyncClient, webhooks):
        response = await client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

        assert response.status_code == 200
        assert response.json() == GENERIC
        assert webhooks.calls == []

    @pytest.mark.asyncio
    async def test_malformed_email(self, client: AsyncClient):
        response = await client.post("/auth/forgot-password", json={"email": "not-an-email"})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"][0]["loc"] == ["body", "email"]

    @pytest.mark.asyncio
    async def test_webhook_failure_withdraws_token(
        self, client: AsyncClient, seed, webhooks, reset_service
    ):
        await seed.user("bob@example.com")
        webhooks.succeed = False

        response = await client.post("/auth/forgot-password", json={"email": "bob@example.com"})

        assert response.status_code == 200
        assert response.json() == GENERIC
        check = await reset_service.verify_token(_token_from(webhooks))
        assert check.valid is False
        assert check.code.value == "PWD_RESET_001"


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------

class TestVerifyResetToken:

    @pytest.mark.asyncio
    async def test_valid(self, client: AsyncClient, seed, reset_service):
        await seed.user("carol@example.com")
        issued = await reset_service.request_reset("carol@example.com")

        response = await client.post("/auth/verify-reset-token", json={"token": issued.token})

        assert response.status_code == 200
        assert response.json() == {"valid": True, "email": "carol@example.com"}

    @pytest.mark.asyncio
    async def test_missing_token_is_invalid(self, client: AsyncClient):
        response = await client.post("/auth/verify-reset-token", json={})

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["code"] == "PWD_RESET_001"

    @pytest.mark.asyncio
    async def test_invalid_answers_200(self, client: AsyncClient):
        response = await client.post("/auth/verify-reset-token", json={"token": "nope"})

        assert response.status_code == 200
        assert response.json() == {
            "valid": False,
            "error": "Invalid or expired reset link",
            "code": "PWD_RESET_001",
        }


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------

class TestResetPassword:

    @pytest.mark.asyncio
    async def test_success(self, client: AsyncClient, seed, reset_service, webhooks):
        await seed.user("dave@example.com")
        issued = await reset_service.request_reset("dave@example.com")

        response = await client.post(
            "/auth/reset-password",
            json={"token": issued.token, "newPassword": "NewPass123"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Password has been reset successfully",
            "email": "dave@example.com",
        }
        assert webhooks.calls == [
            (
                PASSWORD_RESET_COMPLETED,
                {"user_email": "dave@example.com", "new_password": "NewPass123"},
            )
        ]

    @pytest.mark.asyncio
    async def test_weak_password_keeps_token(self, client: AsyncClient, seed, reset_service):
        await seed.user("erin@example.com")
        issued = await reset_service.request_reset("erin@example.com")

        response = await client.post(
            "/auth/reset-password", json={"token": issued.token, "newPassword": "short"}
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": "Password must be at least 8 characters",
            "code": "PWD_RESET_005",
        }
        assert (await reset_service.verify_token(issued.token)).valid is True

    @pytest.mark.asyncio
    async def test_reused_token(self, client: AsyncClient, seed, reset_service):
        await seed.user("frank@example.com")
        issued = await reset_service.request_reset("frank@example.com")
        body = {"token": issued.token, "newPassword": "NewPass123"}

        assert (await client.post("/auth/reset-password", json=body)).status_code == 200
        response = await client.post("/auth/reset-password", json=body)

        assert response.status_code == 400
        assert response.json()["code"] == "PWD_RESET_002"

    @pytest.mark.asyncio
    async def test_missing_new_password(self, client: AsyncClient):
        response = await client.post("/auth/reset-password", json={"token": "f" * 64})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_token(self, client: AsyncClient):
        response = await client.post(
            "/auth/reset-password", json={"token": "f" * 64, "newPassword": "NewPass123"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "PWD_RESET_001"

    @pytest.mark.asyncio
    async def test_expired_token(self, client: AsyncClient, seed, reset_service):
        await seed.user("gina@example.com")
        with patch.object(
            password_reset, "_utcnow", return_value=utcnow() - timedelta(hours=2)
        ):
            issued = await reset_service.request_reset("gina@example.com")

        response = await client.post(
            "/auth/reset-password", json={"token": issued.token, "newPassword": "NewPass123"}
        )

        assert response.status_code == 410
        assert response.json()["code"] == "PWD_RESET_003"

    @pytest.mark.asyncio
    async def test_credential_update_failure(self, client: AsyncClient, seed, reset_service, webhooks):
        await seed.user("hank@example.com")
        issued = await reset_service.request_reset("hank@example.com")
        webhooks.succeed = False

        response = await client.post(
            "/auth/reset-password", json={"token": issued.token, "newPassword": "NewPass123"}
        )

        assert response.status_code == 502
        assert response.json() == {
            "error": "Failed to update password. Please try again.",
            "code": "PWD_RESET_004",
        }
        # The token stays consumed; the user has to request a new link.
        check = await reset_service.verify_token(issued.token)
        assert check.code.value == "PWD_RESET_002"
