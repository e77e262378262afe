"""
Shared fixtures: a temporary SQLite database, recording collaborators and an
app client wired with them.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.auth import create_session_token
from app.core.config import Settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.webhooks import WebhookResult
from app.main import create_app
from app.models.conversation import Conversation
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.user_profile import UserProfile
from app.services.members import MemberService
from app.services.password_reset import PasswordResetService


class RecordingNotifier:
    """Collects events instead of publishing them."""

    def __init__(self):
        self.events: list[tuple[uuid.UUID, dict]] = []

    async def send_to_organization(self, organization_id, event) -> bool:
        self.events.append((organization_id, event))
        return True

    def types(self) -> list[str]:
        return [event["type"] for _, event in self.events]


class StubWebhookClient:
    """Records outbound webhook calls; ``succeed`` controls the outcome."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.calls: list[tuple[str, dict]] = []

    async def send(self, action, payload) -> WebhookResult:
        self.calls.append((action, payload))
        if self.succeed:
            return WebhookResult(success=True)
        return WebhookResult(success=False, error="HTTP 500")

    async def close(self) -> None:
        pass

    def actions(self) -> list[str]:
        return [action for action, _ in self.calls]


class Seeder:
    """Inserts organizations, users and memberships for a test."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._counter = 0

    async def organization(self, name: str = "Acme") -> uuid.UUID:
        org = Organization(name=name)
        async with self._session_factory() as session, session.begin():
            session.add(org)
        return org.id

    async def member(
        self,
        organization_id: uuid.UUID,
        role: str = "user",
        *,
        email: str | None = None,
        is_active: bool = True,
    ) -> uuid.UUID:
        self._counter += 1
        profile = UserProfile(
            email=email or f"{role}{self._counter}@example.com",
            first_name=role.title(),
            last_name=str(self._counter),
            active_organization_id=organization_id,
        )
        async with self._session_factory() as session, session.begin():
            session.add(profile)
            await session.flush()
            session.add(
                OrganizationMember(
                    organization_id=organization_id,
                    user_id=profile.user_id,
                    role=role,
                    is_active=is_active,
                )
            )
        return profile.user_id

    async def user(self, email: str) -> uuid.UUID:
        """A profile with no membership."""
        profile = UserProfile(email=email)
        async with self._session_factory() as session, session.begin():
            session.add(profile)
        return profile.user_id

    async def conversations(self, organization_id: uuid.UUID, user_id: uuid.UUID, count: int) -> None:
        async with self._session_factory() as session, session.begin():
            for i in range(count):
                session.add(
                    Conversation(organization_id=organization_id, user_id=user_id, title=f"c{i}")
                )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def webhooks():
    return StubWebhookClient()


@pytest.fixture
def member_service(session_factory, notifier):
    return MemberService(session_factory, notifier)


@pytest.fixture
def reset_service(session_factory):
    return PasswordResetService(session_factory)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-secret-key-with-enough-bytes-for-hs256",
        database_url="sqlite+aiosqlite://",
        client_url="https://app.test",
        log_format="console",
    )


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.ping.return_value = True
    return client


@pytest.fixture
def app(settings, session_factory, notifier, webhooks, redis_client):
    return create_app(
        settings,
        session_factory=session_factory,
        redis_client=redis_client,
        notifier=notifier,
        webhook_client=webhooks,
    )


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(settings):
    """Build bearer headers for a user id."""

    def _headers(user_id: uuid.UUID, organization_id: uuid.UUID | None = None) -> dict:
        token = create_session_token(user_id, settings, active_org=organization_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
