"""
Outbound client for the Actions platform webhook.

The Actions platform sends reset e-mails, updates Keycloak credentials and
runs connector verification/sync. Every call is a JSON POST of
``{source, action, ...payload, timestamp}``. Failures come back as
``WebhookResult(success=False)``, never as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from app.models.base import utcnow

log = structlog.get_logger()

WEBHOOK_SOURCE = "rita-chat"

PASSWORD_RESET_REQUESTED = "password_reset_requested"
PASSWORD_RESET_COMPLETED = "password_reset_completed"
VERIFY_CREDENTIALS = "verify_credentials"
TRIGGER_SYNC = "trigger_sync"


@dataclass
class WebhookResult:
    success: bool
    error: str | None = None


class ActionsWebhookClient:
    """Posts action events to the Actions platform."""

    def __init__(
        self,
        url: str,
        api_key: str = "",
        request_timeout: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = url
        self._transport = transport
        self._api_key = api_key
        self._request_timeout = request_timeout
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._request_timeout),
            headers=headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, action: str, payload: dict[str, Any]) -> WebhookResult:
        if self._client is None:
            await self.open()
        assert self._client

        body = {
            "source": WEBHOOK_SOURCE,
            "action": action,
            **payload,
            "timestamp": utcnow().isoformat(),
        }
        try:
            resp = await self._client.post(self._url, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            log.error("webhook.rejected", action=action, status=exc.response.status_code)
            return WebhookResult(success=False, error=f"HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            log.error("webhook.unreachable", action=action, error=str(exc))
            return WebhookResult(success=False, error=str(exc) or type(exc).__name__)

        log.info("webhook.sent", action=action)
        return WebhookResult(success=True)
