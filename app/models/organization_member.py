"""Organization membership (join table between organizations and user profiles)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class OrganizationMember(SQLModel, table=True):
    __tablename__ = "organization_members"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user_profiles.user_id", primary_key=True)
    role: str = Field(nullable=False, default="user", index=True)  # owner | admin | user
    is_active: bool = Field(
        default=True, nullable=False, sa_column_kwargs={"server_default": sa.true()}
    )
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
