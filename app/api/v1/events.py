"""
SSE Event Streaming endpoint.

- GET /stream — Authenticated SSE stream of the caller's active organization
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from app.core.auth import AuthenticatedUser, require_member
from app.core.events import event_generator

router = APIRouter()


@router.get("/stream")
async def stream_events(
    request: Request,
    auth: AuthenticatedUser = Depends(require_member),
):
    """
    Stream live events for the caller's organization via SSE.

    Member changes (role, status, removal) and data source updates are
    pushed as they commit; there is no replay. Emits `: heartbeat`
    comments every 30 seconds to keep the connection alive.
    """
    return EventSourceResponse(
        event_generator(request, request.app.state.redis, auth.organization_id)
    )
