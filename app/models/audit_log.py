"""Audit log model (append-only)."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, JSONType, UUIDMixin


class AuditLog(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "audit_logs"

    # Append-only rows cannot follow an organization delete
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="RESTRICT", nullable=False, index=True
    )
    user_id: uuid.UUID = Field(nullable=False, index=True)  # actor
    action: str = Field(nullable=False)
    resource_type: str = Field(nullable=False)
    resource_id: Optional[str] = None
    # "metadata" is reserved on declarative classes, so the attribute is renamed
    details: dict = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", JSONType, nullable=False),
    )
