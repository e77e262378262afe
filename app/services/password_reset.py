"""
Password reset service — single-use, time-limited reset tokens.

Tokens are 32 random bytes rendered as 64 lowercase hex characters and
expire one hour after issue. Each email has at most one unused token.
Consumption is a conditional ``UPDATE ... WHERE used_at IS NULL`` so two
concurrent resets with the same token cannot both succeed.

The credential itself lives in the identity provider; callers update it
after ``reset_password`` succeeds.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import delete, or_, select, update

from app.core.database import SessionFactory
from app.models.base import as_utc, utcnow
from app.models.password_reset_token import PasswordResetToken
from app.models.user_profile import UserProfile
from rita_shared.schemas.auth import (
    PasswordCheck,
    PasswordResetErrorCode,
    ResetOutcome,
    ResetRequest,
    TokenCheck,
)

log = structlog.get_logger()

TOKEN_BYTES = 32
TOKEN_TTL = timedelta(hours=1)
EXPIRED_RETENTION = timedelta(hours=24)
USED_RETENTION = timedelta(days=7)
TOKEN_PATTERN = re.compile(r"[a-f0-9]{64}")
MIN_PASSWORD_LENGTH = 8

INVALID_TOKEN_MESSAGE = "Invalid or expired reset link"
TOKEN_USED_MESSAGE = "This reset link has already been used"
TOKEN_EXPIRED_MESSAGE = "This reset link has expired. Please request a new one."


def _utcnow() -> datetime:
    return utcnow()


def _invalid(code: PasswordResetErrorCode, message: str) -> TokenCheck:
    return TokenCheck(valid=False, error=message, code=code)


def validate_password(password: str) -> PasswordCheck:
    """Return the first violated strength rule, if any."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return PasswordCheck(valid=False, error="Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        return PasswordCheck(
            valid=False, error="Password must contain at least one uppercase letter"
        )
    if not re.search(r"[a-z]", password):
        return PasswordCheck(
            valid=False, error="Password must contain at least one lowercase letter"
        )
    if not re.search(r"[0-9]", password):
        return PasswordCheck(valid=False, error="Password must contain at least one number")
    return PasswordCheck(valid=True)


class PasswordResetService:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    validate_password = staticmethod(validate_password)

    async def request_reset(
        self,
        email: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[ResetRequest]:
        """Issue a new reset token for ``email``.

        Returns None when no user has that email. Callers must answer both
        outcomes with the same message so account existence is not leaked.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserProfile.user_id).where(UserProfile.email == email)
            )
            if result.scalar_one_or_none() is None:
                log.info("password_reset.unknown_email")
                return None

        now = _utcnow()
        token = secrets.token_hex(TOKEN_BYTES)
        expires_at = now + TOKEN_TTL

        async with self._session_factory() as session, session.begin():
            cleanup = await session.execute(
                delete(PasswordResetToken).where(
                    or_(
                        PasswordResetToken.token_expires_at < now - EXPIRED_RETENTION,
                        PasswordResetToken.used_at < now - USED_RETENTION,
                    )
                )
            )
            await session.execute(
                delete(PasswordResetToken).where(
                    PasswordResetToken.user_email == email,
                    PasswordResetToken.used_at.is_(None),
                )
            )
            session.add(
                PasswordResetToken(
                    user_email=email,
                    reset_token=token,
                    token_expires_at=expires_at,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=now,
                )
            )

        log.info(
            "password_reset.requested",
            expires_at=expires_at.isoformat(),
            cleaned_up=cleanup.rowcount,
        )
        return ResetRequest(token=token, expires_at=expires_at)

    async def verify_token(self, token: str) -> TokenCheck:
        """Check a token without consuming it."""
        if not isinstance(token, str) or not TOKEN_PATTERN.fullmatch(token):
            return _invalid(PasswordResetErrorCode.INVALID_TOKEN, INVALID_TOKEN_MESSAGE)

        async with self._session_factory() as session:
            result = await session.execute(
                select(PasswordResetToken).where(PasswordResetToken.reset_token == token)
            )
            row = result.scalar_one_or_none()

        return self._check_row(row)

    def _check_row(self, row: Optional[PasswordResetToken]) -> TokenCheck:
        if row is None:
            return _invalid(PasswordResetErrorCode.INVALID_TOKEN, INVALID_TOKEN_MESSAGE)
        if row.used_at is not None:
            return _invalid(PasswordResetErrorCode.TOKEN_ALREADY_USED, TOKEN_USED_MESSAGE)
        if as_utc(row.token_expires_at) <= _utcnow():
            return _invalid(PasswordResetErrorCode.TOKEN_EXPIRED, TOKEN_EXPIRED_MESSAGE)
        return TokenCheck(valid=True, email=row.user_email)

    async def reset_password(self, token: str) -> ResetOutcome:
        """Consume a token. Exactly one concurrent caller wins."""
        if not isinstance(token, str) or not TOKEN_PATTERN.fullmatch(token):
            return ResetOutcome(
                success=False,
                error=INVALID_TOKEN_MESSAGE,
                code=PasswordResetErrorCode.INVALID_TOKEN,
            )

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(PasswordResetToken).where(PasswordResetToken.reset_token == token)
            )
            row = result.scalar_one_or_none()
            check = self._check_row(row)
            if not check.valid:
                log.info("password_reset.rejected", code=check.code.value)
                return ResetOutcome(success=False, error=check.error, code=check.code)

            consumed = await session.execute(
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.id == row.id,
                    PasswordResetToken.used_at.is_(None),
                )
                .values(used_at=_utcnow())
                .returning(PasswordResetToken.id, PasswordResetToken.user_email)
            )
            claimed = consumed.one_or_none()

        if claimed is None:
            log.info("password_reset.lost_race", token_id=str(row.id))
            return ResetOutcome(
                success=False,
                error=TOKEN_USED_MESSAGE,
                code=PasswordResetErrorCode.TOKEN_ALREADY_USED,
            )

        log.info("password_reset.consumed", token_id=str(claimed.id))
        return ResetOutcome(success=True, token_id=claimed.id, email=claimed.user_email)

    async def delete_token(self, token: str) -> None:
        """Remove an issued token, e.g. when the reset email could not be sent."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                delete(PasswordResetToken).where(PasswordResetToken.reset_token == token)
            )
        log.info("password_reset.token_deleted")
