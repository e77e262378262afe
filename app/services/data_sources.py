"""
Data source service — connector configuration per organization.

Rows start ``idle`` and disabled. Verification and sync results arrive
asynchronously from the Actions platform and are recorded through
``update_status`` / ``update_verification_status``.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.core.database import SessionFactory
from app.core.errors import ErrorKind, ServiceError
from app.core.events import DATA_SOURCE_UPDATED, OrganizationNotifier
from app.models.base import as_utc, utcnow
from app.models.data_source import DataSourceConnection
from rita_shared.schemas.data_sources import (
    DataSourceStatus,
    DataSourceType,
    DataSourceUpdateRequest,
)

log = structlog.get_logger()

VERIFICATION_THROTTLE = timedelta(minutes=10)

DEFAULT_DATA_SOURCES: list[dict[str, str]] = [
    {
        "type": DataSourceType.CONFLUENCE.value,
        "name": "Confluence",
        "description": "Atlassian Confluence spaces and pages",
    },
    {
        "type": DataSourceType.SERVICENOW.value,
        "name": "ServiceNow",
        "description": "ServiceNow knowledge base articles",
    },
    {
        "type": DataSourceType.SHAREPOINT.value,
        "name": "SharePoint",
        "description": "Microsoft SharePoint sites and documents",
    },
    {
        "type": DataSourceType.WEBSEARCH.value,
        "name": "Web Search",
        "description": "Public web search results",
    },
]

# Sentinel for "leave last_sync_status untouched" (None is a valid value).
UNSET: Any = object()


class DataSourceService:
    def __init__(
        self,
        session_factory: SessionFactory,
        notifier: Optional[OrganizationNotifier] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier

    async def _publish(self, connection: DataSourceConnection) -> None:
        if self._notifier is None:
            return
        await self._notifier.send_to_organization(
            connection.organization_id,
            {
                "type": DATA_SOURCE_UPDATED,
                "data": {
                    "connectionId": str(connection.id),
                    "type": connection.type,
                    "status": connection.status,
                    "lastSyncStatus": connection.last_sync_status,
                    "lastVerificationError": connection.last_verification_error,
                    "timestamp": utcnow().isoformat(),
                },
            },
        )

    async def list_data_sources(self, organization_id: uuid.UUID) -> list[DataSourceConnection]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DataSourceConnection)
                .where(DataSourceConnection.organization_id == organization_id)
                .order_by(DataSourceConnection.created_at.asc())
            )
            return list(result.scalars().all())

    async def get_data_source(
        self, data_source_id: uuid.UUID, organization_id: uuid.UUID
    ) -> Optional[DataSourceConnection]:
        async with self._session_factory() as session:
            return await self._get(session, data_source_id, organization_id)

    async def _get(self, session, data_source_id, organization_id) -> Optional[DataSourceConnection]:
        result = await session.execute(
            select(DataSourceConnection).where(
                DataSourceConnection.id == data_source_id,
                DataSourceConnection.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_data_source(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        type: str,
        name: str,
        description: Optional[str] = None,
        settings: Optional[dict] = None,
    ) -> DataSourceConnection:
        try:
            source_type = DataSourceType(type)
        except ValueError:
            raise ServiceError(
                ErrorKind.VALIDATION,
                f"Invalid data source type: {type}",
                "INVALID_DATA_SOURCE_TYPE",
            ) from None

        connection = DataSourceConnection(
            organization_id=organization_id,
            type=source_type.value,
            name=name,
            description=description,
            settings=settings or {},
            status=DataSourceStatus.IDLE.value,
            enabled=False,
            created_by=user_id,
            updated_by=user_id,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(connection)
        except IntegrityError:
            raise ServiceError(
                ErrorKind.CONFLICT,
                f"A {source_type.value} data source already exists",
                "DATA_SOURCE_EXISTS",
            ) from None

        log.info(
            "data_source.created",
            organization_id=str(organization_id),
            data_source_id=str(connection.id),
            type=source_type.value,
            created_by=str(user_id),
        )
        return connection

    async def update_data_source(
        self,
        data_source_id: uuid.UUID,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        changes: DataSourceUpdateRequest,
    ) -> Optional[DataSourceConnection]:
        """Partial update; an empty change set returns the row untouched."""
        fields = changes.model_dump(exclude_unset=True)

        async with self._session_factory() as session, session.begin():
            connection = await self._get(session, data_source_id, organization_id)
            if connection is None or not fields:
                return connection

            for key, value in fields.items():
                setattr(connection, key, value)
            connection.updated_by = user_id
            connection.updated_at = utcnow()
            session.add(connection)

        log.info(
            "data_source.updated",
            organization_id=str(organization_id),
            data_source_id=str(data_source_id),
            fields=sorted(fields),
            updated_by=str(user_id),
        )
        return connection

    async def delete_data_source(
        self, data_source_id: uuid.UUID, organization_id: uuid.UUID
    ) -> bool:
        async with self._session_factory() as session, session.begin():
            connection = await self._get(session, data_source_id, organization_id)
            if connection is None:
                return False
            await session.delete(connection)

        log.info(
            "data_source.deleted",
            organization_id=str(organization_id),
            data_source_id=str(data_source_id),
        )
        return True

    async def seed_default_data_sources(
        self, organization_id: uuid.UUID, user_id: uuid.UUID
    ) -> tuple[list[DataSourceConnection], list[str]]:
        """Create any missing default connectors. Safe to call repeatedly."""
        created: list[DataSourceConnection] = []
        existing: list[str] = []

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(DataSourceConnection.type).where(
                    DataSourceConnection.organization_id == organization_id
                )
            )
            present = set(result.scalars().all())

            for source in DEFAULT_DATA_SOURCES:
                if source["type"] in present:
                    existing.append(source["type"])
                    continue
                connection = DataSourceConnection(
                    organization_id=organization_id,
                    type=source["type"],
                    name=source["name"],
                    description=source["description"],
                    status=DataSourceStatus.IDLE.value,
                    enabled=False,
                    created_by=user_id,
                    updated_by=user_id,
                )
                session.add(connection)
                created.append(connection)

        log.info(
            "data_source.seeded",
            organization_id=str(organization_id),
            created=[c.type for c in created],
            existing=existing,
        )
        return created, existing

    async def update_status(
        self,
        data_source_id: uuid.UUID,
        organization_id: uuid.UUID,
        status: DataSourceStatus,
        last_sync_status: Any = UNSET,
        touch_last_sync_at: bool = False,
    ) -> Optional[DataSourceConnection]:
        async with self._session_factory() as session, session.begin():
            connection = await self._get(session, data_source_id, organization_id)
            if connection is None:
                return None
            connection.status = DataSourceStatus(status).value
            if last_sync_status is not UNSET:
                connection.last_sync_status = (
                    None if last_sync_status is None else str(getattr(last_sync_status, "value", last_sync_status))
                )
            if touch_last_sync_at:
                connection.last_sync_at = utcnow()
            connection.updated_at = utcnow()
            session.add(connection)

        log.info(
            "data_source.status_updated",
            organization_id=str(organization_id),
            data_source_id=str(data_source_id),
            status=connection.status,
            last_sync_status=connection.last_sync_status,
        )
        await self._publish(connection)
        return connection

    async def should_trigger_verification(
        self, data_source_id: uuid.UUID, organization_id: uuid.UUID
    ) -> bool:
        """False while a verification ran within the throttle window."""
        connection = await self.get_data_source(data_source_id, organization_id)
        if connection is None:
            return False
        if connection.last_verification_at is None:
            return True
        return as_utc(connection.last_verification_at) < utcnow() - VERIFICATION_THROTTLE

    async def update_verification_status(
        self,
        data_source_id: uuid.UUID,
        organization_id: uuid.UUID,
        succeeded: bool,
        options: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> Optional[DataSourceConnection]:
        async with self._session_factory() as session, session.begin():
            connection = await self._get(session, data_source_id, organization_id)
            if connection is None:
                return None
            connection.status = DataSourceStatus.IDLE.value
            connection.last_verification_at = utcnow()
            if succeeded:
                connection.last_verification_error = None
                if options:
                    connection.latest_options = options
            else:
                connection.last_verification_error = error or "Verification failed"
            connection.updated_at = utcnow()
            session.add(connection)

        log.info(
            "data_source.verification_recorded",
            organization_id=str(organization_id),
            data_source_id=str(data_source_id),
            succeeded=succeeded,
        )
        await self._publish(connection)
        return connection
