"""Password reset schemas and error codes."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import EmailStr

from .common import CamelModel


class PasswordResetErrorCode(str, Enum):
    INVALID_TOKEN = "PWD_RESET_001"
    TOKEN_ALREADY_USED = "PWD_RESET_002"
    TOKEN_EXPIRED = "PWD_RESET_003"
    WEBHOOK_FAILURE = "PWD_RESET_004"
    WEAK_PASSWORD = "PWD_RESET_005"
    RATE_LIMIT_EXCEEDED = "PWD_RESET_006"  # reserved


GENERIC_RESET_MESSAGE = (
    "If an account exists with that email, you will receive password reset instructions."
)


# ---------------------------------------------------------------------------
# Service results
# ---------------------------------------------------------------------------

class ResetRequest(CamelModel):
    """A freshly issued reset token."""
    token: str
    expires_at: datetime


class TokenCheck(CamelModel):
    """Outcome of verifying a token without consuming it."""
    valid: bool
    email: Optional[str] = None
    error: Optional[str] = None
    code: Optional[PasswordResetErrorCode] = None


class ResetOutcome(CamelModel):
    """Outcome of consuming a token."""
    success: bool
    token_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    error: Optional[str] = None
    code: Optional[PasswordResetErrorCode] = None


class PasswordCheck(CamelModel):
    valid: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# API schemas
# ---------------------------------------------------------------------------

class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ForgotPasswordResponse(CamelModel):
    success: bool = True
    message: str = GENERIC_RESET_MESSAGE


class VerifyResetTokenRequest(CamelModel):
    """A missing token verifies as invalid rather than failing validation."""
    token: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: str
    new_password: str


class ResetPasswordResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    email: Optional[str] = None
