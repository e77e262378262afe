"""Password reset token model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class PasswordResetToken(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "password_reset_tokens"

    user_email: str = Field(nullable=False, index=True)
    reset_token: str = Field(nullable=False, unique=True, index=True, max_length=64)
    token_expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    used_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
