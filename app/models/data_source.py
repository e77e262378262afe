"""Data source connection model (connector configuration per organization)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class DataSourceConnection(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "data_source_connections"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "type", name="uq_data_source_org_type"),
    )

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    type: str = Field(nullable=False)  # confluence | servicenow | sharepoint | websearch
    name: str = Field(nullable=False)
    description: Optional[str] = None
    settings: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)

    status: str = Field(default="idle", nullable=False)  # idle | verifying | syncing
    last_sync_status: Optional[str] = None  # completed | failed
    last_sync_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    last_sync_error: Optional[str] = None

    last_verification_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    last_verification_error: Optional[str] = None
    latest_options: Optional[dict] = Field(default=None, sa_type=JSONType)

    enabled: bool = Field(default=False, nullable=False)

    created_by: uuid.UUID = Field(nullable=False)
    updated_by: uuid.UUID = Field(nullable=False)
