"""
Rita API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router
from app.core.config import Settings, get_settings
from app.core.database import SessionFactory, create_engine, create_session_factory
from app.core.errors import error_responses, register_error_handlers
from app.core.events import OrganizationNotifier
from app.core.logging import configure_logging
from app.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware
from app.core.redis import close_redis, create_redis
from app.core.webhooks import ActionsWebhookClient
from app.services.data_sources import DataSourceService
from app.services.members import MemberService
from app.services.password_reset import PasswordResetService

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
    redis_client: Optional[redis.Redis] = None,
    notifier: Optional[OrganizationNotifier] = None,
    webhook_client: Optional[ActionsWebhookClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not passed in are built from ``settings``; tests inject
    their own.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    engine = None
    if session_factory is None:
        engine = create_engine(settings.database_url, echo=settings.debug)
        session_factory = create_session_factory(engine)
    if redis_client is None:
        redis_client = create_redis(settings.redis_url)
    if notifier is None:
        notifier = OrganizationNotifier(redis_client)
    if webhook_client is None:
        webhook_client = ActionsWebhookClient(
            settings.actions_webhook_url,
            api_key=settings.actions_api_key,
            request_timeout=settings.webhook_timeout_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("rita.starting", debug=settings.debug)
        yield
        log.info("rita.shutting_down")
        await webhook_client.close()
        await close_redis(redis_client)
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Rita",
        description="Multi-tenant organization, membership and connector API.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.redis = redis_client
    app.state.webhook_client = webhook_client
    app.state.member_service = MemberService(session_factory, notifier)
    app.state.password_reset_service = PasswordResetService(session_factory)
    app.state.data_source_service = DataSourceService(session_factory, notifier)

    register_error_handlers(app)

    # Middleware (order matters — outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )

    # Password reset routes (public, not org-scoped)
    app.include_router(
        auth_router,
        prefix="/auth",
        tags=["Authentication"],
        responses=error_responses(400, 410, 502),
    )

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis must answer."""
        checks = {}
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as exc:
            log.warning("ready.database_unavailable", error=str(exc))
            checks["database"] = "unavailable"
        try:
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            log.warning("ready.redis_unavailable", error=str(exc))
            checks["redis"] = "unavailable"

        if all(value == "ok" for value in checks.values()):
            return {"status": "ready", "checks": checks}
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": checks})

    return app


app = create_app()
