"""Conversation model. Only counted here; chat itself lives elsewhere."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Conversation(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "conversations"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="user_profiles.user_id", nullable=False, index=True)
    title: Optional[str] = None
