"""
Route dependencies resolving the collaborators built by ``create_app()``.
"""

from __future__ import annotations

from fastapi import Request

from app.core.webhooks import ActionsWebhookClient
from app.services.data_sources import DataSourceService
from app.services.members import MemberService
from app.services.password_reset import PasswordResetService


def get_member_service(request: Request) -> MemberService:
    return request.app.state.member_service


def get_password_reset_service(request: Request) -> PasswordResetService:
    return request.app.state.password_reset_service


def get_data_source_service(request: Request) -> DataSourceService:
    return request.app.state.data_source_service


def get_webhook_client(request: Request) -> ActionsWebhookClient:
    return request.app.state.webhook_client
