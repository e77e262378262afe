"""
Password reset endpoints (public, not org-scoped).

POST /auth/forgot-password     — Issue a reset token and e-mail the link
POST /auth/verify-reset-token  — Check a token without consuming it
POST /auth/reset-password      — Consume a token and set the new password

The credential lives in Keycloak; the Actions platform sends the e-mail
and applies the new password.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request

from app.api.deps import get_password_reset_service, get_webhook_client
from app.core.errors import ErrorKind, ServiceError
from app.core.webhooks import (
    PASSWORD_RESET_COMPLETED,
    PASSWORD_RESET_REQUESTED,
    ActionsWebhookClient,
)
from app.services.password_reset import PasswordResetService
from rita_shared.schemas.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    PasswordResetErrorCode,
    ResetPasswordRequest,
    ResetPasswordResponse,
    TokenCheck,
    VerifyResetTokenRequest,
)

router = APIRouter()
log = structlog.get_logger()

_KIND_BY_CODE = {
    PasswordResetErrorCode.INVALID_TOKEN: ErrorKind.VALIDATION,
    PasswordResetErrorCode.TOKEN_ALREADY_USED: ErrorKind.VALIDATION,
    PasswordResetErrorCode.TOKEN_EXPIRED: ErrorKind.GONE,
}


@router.post("/forgot-password", response_model=ForgotPasswordResponse, response_model_by_alias=True)
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    resets: PasswordResetService = Depends(get_password_reset_service),
    webhooks: ActionsWebhookClient = Depends(get_webhook_client),
):
    """Always answers with the same message, whether or not the account exists."""
    email = str(body.email)
    issued = await resets.request_reset(
        email,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    if issued is not None:
        settings = request.app.state.settings
        result = await webhooks.send(
            PASSWORD_RESET_REQUESTED,
            {
                "user_email": email,
                "reset_link": f"{settings.client_url}/reset-password?token={issued.token}",
                "expires_at": issued.expires_at.isoformat(),
            },
        )
        if not result.success:
            # An undeliverable token must not stay redeemable.
            await resets.delete_token(issued.token)
            log.error(
                "password_reset.email_failed",
                code=PasswordResetErrorCode.WEBHOOK_FAILURE.value,
                error=result.error,
            )

    return ForgotPasswordResponse()


@router.post(
    "/verify-reset-token",
    response_model=TokenCheck,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def verify_reset_token(
    body: VerifyResetTokenRequest,
    resets: PasswordResetService = Depends(get_password_reset_service),
):
    """Token check for the reset form. Invalid tokens still answer 200."""
    return await resets.verify_token(body.token)


@router.post("/reset-password", response_model=ResetPasswordResponse, response_model_by_alias=True)
async def reset_password(
    body: ResetPasswordRequest,
    resets: PasswordResetService = Depends(get_password_reset_service),
    webhooks: ActionsWebhookClient = Depends(get_webhook_client),
):
    strength = resets.validate_password(body.new_password)
    if not strength.valid:
        raise ServiceError(
            ErrorKind.VALIDATION, strength.error, PasswordResetErrorCode.WEAK_PASSWORD.value
        )

    outcome = await resets.reset_password(body.token)
    if not outcome.success:
        raise ServiceError(_KIND_BY_CODE[outcome.code], outcome.error, outcome.code.value)

    result = await webhooks.send(
        PASSWORD_RESET_COMPLETED,
        {"user_email": outcome.email, "new_password": body.new_password},
    )
    if not result.success:
        log.error(
            "password_reset.credential_update_failed",
            token_id=str(outcome.token_id),
            error=result.error,
        )
        raise ServiceError(
            ErrorKind.UPSTREAM,
            "Failed to update password. Please try again.",
            PasswordResetErrorCode.WEBHOOK_FAILURE.value,
        )

    log.info("password_reset.completed", token_id=str(outcome.token_id))
    return ResetPasswordResponse(
        success=True,
        message="Password has been reset successfully",
        email=outcome.email,
    )
