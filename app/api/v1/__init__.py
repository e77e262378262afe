"""
API v1 Router

Org-scoped endpoints act on the caller's active organization.
"""

from fastapi import APIRouter

from app.core.errors import error_responses
from . import data_sources, events, members

router = APIRouter()

router.include_router(
    members.router,
    prefix="/organizations/members",
    tags=["Members"],
    responses=error_responses(400, 401, 403, 404, 409, 501),
)
router.include_router(
    data_sources.router,
    prefix="/data-sources",
    tags=["Data Sources"],
    responses=error_responses(400, 401, 403, 404, 409, 502),
)
router.include_router(events.router, prefix="/events", tags=["Events"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/organizations/members",
            "/data-sources",
            "/events/stream",
        ],
    }
