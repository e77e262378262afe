"""Data source connection schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import UUID4, Field

from .common import CamelModel


class DataSourceType(str, Enum):
    CONFLUENCE = "confluence"
    SERVICENOW = "servicenow"
    SHAREPOINT = "sharepoint"
    WEBSEARCH = "websearch"


class DataSourceStatus(str, Enum):
    IDLE = "idle"
    VERIFYING = "verifying"
    SYNCING = "syncing"


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class DataSourceCreateRequest(CamelModel):
    type: str
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    settings: dict[str, Any] = Field(default_factory=dict)


class DataSourceUpdateRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    settings: Optional[dict[str, Any]] = None
    enabled: Optional[bool] = None


class VerifyCredentialsRequest(CamelModel):
    """Without credentials the verification is an auto-check and is throttled."""
    credentials: Optional[dict[str, Any]] = None
    settings: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class DataSourceResponse(CamelModel):
    id: UUID4
    organization_id: UUID4
    type: DataSourceType
    name: str
    description: Optional[str] = None
    settings: dict[str, Any]
    status: DataSourceStatus
    last_sync_status: Optional[SyncStatus] = None
    last_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    last_verification_at: Optional[datetime] = None
    last_verification_error: Optional[str] = None
    latest_options: Optional[dict[str, Any]] = None
    enabled: bool
    created_by: UUID4
    updated_by: UUID4
    created_at: datetime
    updated_at: datetime


class DataSourceListResponse(CamelModel):
    data: List[DataSourceResponse]


class DataSourceSeedResponse(CamelModel):
    created: List[DataSourceResponse]
    existing: List[str]


class VerifyResponse(CamelModel):
    status: str
    message: str
    last_verification_at: Optional[datetime] = None


class SyncTriggered(CamelModel):
    id: UUID4
    status: DataSourceStatus = DataSourceStatus.SYNCING
    triggered_at: datetime


class SyncResponse(CamelModel):
    data: SyncTriggered
