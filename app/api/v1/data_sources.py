"""
Data Source Connection API endpoints.

GET    /api/v1/data-sources              — List connectors
POST   /api/v1/data-sources              — Create a connector (owner/admin)
POST   /api/v1/data-sources/seed         — Create missing default connectors (owner/admin)
GET    /api/v1/data-sources/{id}         — Get a connector
PATCH  /api/v1/data-sources/{id}         — Update a connector (owner/admin)
DELETE /api/v1/data-sources/{id}         — Delete a connector (owner/admin)
POST   /api/v1/data-sources/{id}/verify  — Verify credentials via the Actions platform
POST   /api/v1/data-sources/{id}/sync    — Trigger a sync via the Actions platform

Verify and sync results arrive later as ``data_source_updated`` events.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response

from app.api.deps import get_data_source_service, get_webhook_client
from app.core.auth import AuthenticatedUser, require_member, require_owner_or_admin
from app.core.errors import ErrorKind, ServiceError
from app.core.webhooks import TRIGGER_SYNC, VERIFY_CREDENTIALS, ActionsWebhookClient
from app.models.base import utcnow
from app.services.data_sources import DataSourceService
from rita_shared.schemas.data_sources import (
    DataSourceCreateRequest,
    DataSourceListResponse,
    DataSourceResponse,
    DataSourceSeedResponse,
    DataSourceStatus,
    DataSourceUpdateRequest,
    SyncResponse,
    SyncStatus,
    SyncTriggered,
    VerifyCredentialsRequest,
    VerifyResponse,
)

router = APIRouter()
log = structlog.get_logger()


def _not_found() -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, "Data source not found", "DATA_SOURCE_NOT_FOUND")


@router.get("", response_model=DataSourceListResponse, response_model_by_alias=True, tags=["Data Sources"])
async def list_data_sources(
    auth: AuthenticatedUser = Depends(require_member),
    sources: DataSourceService = Depends(get_data_source_service),
):
    rows = await sources.list_data_sources(auth.organization_id)
    return DataSourceListResponse(data=[DataSourceResponse.model_validate(r) for r in rows])


@router.post(
    "",
    response_model=DataSourceResponse,
    response_model_by_alias=True,
    status_code=201,
    tags=["Data Sources"],
)
async def create_data_source(
    body: DataSourceCreateRequest,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    sources: DataSourceService = Depends(get_data_source_service),
):
    row = await sources.create_data_source(
        auth.organization_id,
        auth.user_id,
        type=body.type,
        name=body.name,
        description=body.description,
        settings=body.settings,
    )
    return DataSourceResponse.model_validate(row)


@router.post("/seed", response_model=DataSourceSeedResponse, response_model_by_alias=True, tags=["Data Sources"])
async def seed_data_sources(
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    sources: DataSourceService = Depends(get_data_source_service),
):
    """Create the default connectors that do not exist yet."""
    created, existing = await sources.seed_default_data_sources(auth.organization_id, auth.user_id)
    return DataSourceSeedResponse(
        created=[DataSourceResponse.model_validate(r) for r in created],
        existing=existing,
    )


@router.get("/{id}", response_model=DataSourceResponse, response_model_by_alias=True, tags=["Data Sources"])
async def get_data_source(
    id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    sources: DataSourceService = Depends(get_data_source_service),
):
    row = await sources.get_data_source(id, auth.organization_id)
    if row is None:
        raise _not_found()
    return DataSourceResponse.model_validate(row)


@router.patch("/{id}", response_model=DataSourceResponse, response_model_by_alias=True, tags=["Data Sources"])
async def update_data_source(
    id: uuid.UUID,
    body: DataSourceUpdateRequest,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    sources: DataSourceService = Depends(get_data_source_service),
):
    row = await sources.update_data_source(id, auth.organization_id, auth.user_id, body)
    if row is None:
        raise _not_found()
    return DataSourceResponse.model_validate(row)


@router.delete("/{id}", status_code=204, tags=["Data Sources"])
async def delete_data_source(
    id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    sources: DataSourceService = Depends(get_data_source_service),
):
    if not await sources.delete_data_source(id, auth.organization_id):
        raise _not_found()
    return Response(status_code=204)


@router.post("/{id}/verify", response_model=VerifyResponse, response_model_by_alias=True, tags=["Data Sources"])
async def verify_data_source(
    id: uuid.UUID,
    body: Optional[VerifyCredentialsRequest] = None,
    auth: AuthenticatedUser = Depends(require_member),
    sources: DataSourceService = Depends(get_data_source_service),
    webhooks: ActionsWebhookClient = Depends(get_webhook_client),
):
    """
    Verify connector credentials.

    With credentials this is a manual check. Without, it is an
    auto-verification throttled to once every ten minutes.
    """
    body = body or VerifyCredentialsRequest()
    row = await sources.get_data_source(id, auth.organization_id)
    if row is None:
        raise _not_found()

    if body.credentials is None and not await sources.should_trigger_verification(
        id, auth.organization_id
    ):
        return VerifyResponse(
            status="skipped",
            message="Verification throttled (10-minute minimum)",
            last_verification_at=row.last_verification_at,
        )

    await sources.update_status(id, auth.organization_id, DataSourceStatus.VERIFYING)
    result = await webhooks.send(
        VERIFY_CREDENTIALS,
        {
            "organization_id": str(auth.organization_id),
            "user_id": str(auth.user_id),
            "user_email": auth.email,
            "connection_id": str(row.id),
            "connection_type": row.type,
            "credentials": body.credentials or {},
            "settings": body.settings if body.settings is not None else row.settings,
        },
    )
    if not result.success:
        await sources.update_status(
            id, auth.organization_id, DataSourceStatus.IDLE, last_sync_status=SyncStatus.FAILED
        )
        log.error(
            "data_source.verify_failed",
            organization_id=str(auth.organization_id),
            data_source_id=str(id),
            error=result.error,
        )
        raise ServiceError(
            ErrorKind.UPSTREAM, "Verification webhook failed", "WEBHOOK_FAILED", details=result.error
        )

    log.info(
        "data_source.verify_triggered",
        organization_id=str(auth.organization_id),
        data_source_id=str(id),
    )
    return VerifyResponse(status="verifying", message="Verification in progress")


@router.post("/{id}/sync", response_model=SyncResponse, response_model_by_alias=True, tags=["Data Sources"])
async def sync_data_source(
    id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    sources: DataSourceService = Depends(get_data_source_service),
    webhooks: ActionsWebhookClient = Depends(get_webhook_client),
):
    row = await sources.get_data_source(id, auth.organization_id)
    if row is None:
        raise _not_found()
    if not row.enabled:
        raise ServiceError(
            ErrorKind.VALIDATION,
            "Data source not configured",
            "DATA_SOURCE_DISABLED",
            message="Please configure the data source before triggering a sync",
        )
    if row.status == DataSourceStatus.SYNCING.value:
        raise ServiceError(
            ErrorKind.CONFLICT,
            "Sync already in progress",
            "SYNC_IN_PROGRESS",
            message="A sync is already running for this data source",
        )

    await sources.update_status(id, auth.organization_id, DataSourceStatus.SYNCING)
    result = await webhooks.send(
        TRIGGER_SYNC,
        {
            "organization_id": str(auth.organization_id),
            "user_id": str(auth.user_id),
            "user_email": auth.email,
            "connection_id": str(row.id),
            "connection_type": row.type,
            "settings": row.settings,
        },
    )
    if not result.success:
        await sources.update_status(
            id, auth.organization_id, DataSourceStatus.IDLE, last_sync_status=SyncStatus.FAILED
        )
        log.error(
            "data_source.sync_failed",
            organization_id=str(auth.organization_id),
            data_source_id=str(id),
            error=result.error,
        )
        raise ServiceError(
            ErrorKind.UPSTREAM, "Sync trigger failed", "WEBHOOK_FAILED", details=result.error
        )

    log.info(
        "data_source.sync_triggered",
        organization_id=str(auth.organization_id),
        data_source_id=str(id),
    )
    return SyncResponse(data=SyncTriggered(id=row.id, triggered_at=utcnow()))
