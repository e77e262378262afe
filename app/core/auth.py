"""
Authentication and authorization for the Rita API.

Session tokens are JWTs issued by the identity provider:
- read from ``Authorization: Bearer`` or the ``rita_session`` cookie
- ``sub`` is the user id, ``active_org`` optionally selects the organization
- the caller must hold an active membership in that organization
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlmodel import select

from app.core.config import Settings
from app.core.errors import ErrorKind, ServiceError
from app.models.organization_member import OrganizationMember
from app.models.user_profile import UserProfile

log = structlog.get_logger()

SESSION_COOKIE = "rita_session"
CSRF_COOKIE = "rita_csrf"

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_session_token(
    user_id: uuid.UUID,
    settings: Settings,
    *,
    active_org: uuid.UUID | None = None,
    expires_delta: timedelta = timedelta(hours=1),
) -> str:
    """Sign a session token (local development and tests)."""
    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "iat": now, "exp": now + expires_delta}
    if active_org is not None:
        payload["active_org"] = str(active_org)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str, settings: Settings) -> dict:
    """Decode and verify a session token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """Container for an authenticated user + their organization context."""

    def __init__(self, profile: UserProfile, membership: OrganizationMember):
        self.user_id = profile.user_id
        self.email = profile.email
        self.organization_id = membership.organization_id
        self.role = membership.role


def _unauthenticated(message: str = "Authentication required") -> ServiceError:
    return ServiceError(ErrorKind.UNAUTHENTICATED, message, "UNAUTHORIZED")


def _forbidden(message: str = "Insufficient permissions") -> ServiceError:
    return ServiceError(ErrorKind.PERMISSION_DENIED, message, "INSUFFICIENT_PERMISSIONS")


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(SESSION_COOKIE)


async def get_authenticated_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
) -> AuthenticatedUser:
    """Main authentication dependency: bearer header first, then cookie."""
    token = _extract_token(request, authorization)
    if not token:
        raise _unauthenticated()

    settings: Settings = request.app.state.settings
    try:
        payload = decode_session_token(token, settings)
        user_id = uuid.UUID(payload["sub"])
        active_org = payload.get("active_org")
        organization_id = uuid.UUID(active_org) if active_org else None
    except (jwt.PyJWTError, KeyError, ValueError):
        raise _unauthenticated("Invalid or expired session")

    async with request.app.state.session_factory() as session:
        result = await session.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )
        profile = result.scalar_one_or_none()
        if profile is None:
            raise _unauthenticated("User not found")

        organization_id = organization_id or profile.active_organization_id
        if organization_id is None:
            raise _forbidden("No active organization")

        result = await session.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user_id,
            )
        )
        membership = result.scalar_one_or_none()

    if membership is None or not membership.is_active:
        log.info(
            "auth.membership_rejected",
            user_id=str(user_id),
            organization_id=str(organization_id),
        )
        raise _forbidden("Not an active member of this organization")

    auth = AuthenticatedUser(profile, membership)
    request.state.auth = auth
    return auth


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_member(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    """Any active member of the organization."""
    return auth


async def require_owner_or_admin(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    if auth.role not in ("owner", "admin"):
        raise _forbidden()
    return auth


async def require_owner(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
) -> AuthenticatedUser:
    if auth.role != "owner":
        raise _forbidden()
    return auth
