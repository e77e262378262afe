"""
Organization Member Management API endpoints.

GET    /api/v1/organizations/members                      — List members
GET    /api/v1/organizations/members/{userId}             — Member details
PATCH  /api/v1/organizations/members/{userId}/role        — Change role (owner)
PATCH  /api/v1/organizations/members/{userId}/status      — Activate/deactivate
DELETE /api/v1/organizations/members/{userId}             — Remove from organization
DELETE /api/v1/organizations/members/{userId}/permanent   — Hard delete (Phase 2)
DELETE /api/v1/organizations/members/self/permanent       — Delete own account (Phase 2)

All endpoints act on the caller's active organization.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends

from app.api.deps import get_member_service
from app.core.auth import (
    AuthenticatedUser,
    require_member,
    require_owner,
    require_owner_or_admin,
)
from app.core.errors import ErrorKind, ServiceError
from app.services.members import MemberService
from rita_shared.schemas.common import MemberRole, SortOrder
from rita_shared.schemas.members import (
    MemberDetailResponse,
    MemberList,
    MemberRoleUpdateRequest,
    MemberSortField,
    MemberStatusUpdateRequest,
    MemberUpdateResponse,
    RemovedMember,
)

router = APIRouter()

_ROLES = ", ".join(role.value for role in MemberRole)


def _parse_role(value: Optional[str]) -> MemberRole:
    try:
        return MemberRole(value)
    except ValueError:
        raise ServiceError(
            ErrorKind.VALIDATION, f"Invalid role. Must be one of: {_ROLES}", "INVALID_ROLE"
        ) from None


@router.get("", response_model=MemberList, response_model_by_alias=True, tags=["Members"])
async def list_members(
    role: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    sortBy: str = MemberSortField.JOINED_AT.value,
    sortOrder: str = SortOrder.DESC.value,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    members: MemberService = Depends(get_member_service),
):
    """List members of the active organization (owner/admin)."""
    role_filter = _parse_role(role) if role is not None else None
    try:
        sort_field = MemberSortField(sortBy)
    except ValueError:
        raise ServiceError(
            ErrorKind.VALIDATION,
            "Invalid sortBy. Must be one of: email, role, joinedAt",
            "INVALID_SORT",
        ) from None
    try:
        sort_order = SortOrder(sortOrder)
    except ValueError:
        raise ServiceError(
            ErrorKind.VALIDATION,
            "Invalid sortOrder. Must be one of: asc, desc",
            "INVALID_SORT_ORDER",
        ) from None

    return await members.list_members(
        auth.organization_id,
        role=role_filter,
        limit=max(1, min(limit, 100)),
        offset=max(0, offset),
        sort_by=sort_field,
        sort_order=sort_order,
    )


# Declared before "/{userId}/permanent" so "self" is not parsed as a user id.
@router.delete("/self/permanent", tags=["Members"])
async def delete_own_account(
    auth: AuthenticatedUser = Depends(require_member),
    members: MemberService = Depends(get_member_service),
):
    """Delete the caller's own account (Phase 2)."""
    await members.delete_own_account(auth.user_id, auth.organization_id)


@router.get(
    "/{userId}", response_model=MemberDetailResponse, response_model_by_alias=True, tags=["Members"]
)
async def get_member(
    userId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    members: MemberService = Depends(get_member_service),
):
    member = await members.get_member_details(auth.organization_id, userId)
    return MemberDetailResponse(member=member)


@router.patch(
    "/{userId}/role", response_model=MemberUpdateResponse, response_model_by_alias=True, tags=["Members"]
)
async def update_member_role(
    userId: uuid.UUID,
    body: MemberRoleUpdateRequest,
    auth: AuthenticatedUser = Depends(require_owner),
    members: MemberService = Depends(get_member_service),
):
    """Change a member's role (owner only)."""
    new_role = _parse_role(body.role)
    member = await members.update_member_role(
        auth.organization_id, userId, new_role, auth.user_id
    )
    return MemberUpdateResponse(member=member, message="Member role updated successfully")


@router.patch(
    "/{userId}/status",
    response_model=MemberUpdateResponse,
    response_model_by_alias=True,
    tags=["Members"],
)
async def update_member_status(
    userId: uuid.UUID,
    body: MemberStatusUpdateRequest,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    members: MemberService = Depends(get_member_service),
):
    """Activate or deactivate a member."""
    if not isinstance(body.is_active, bool):
        raise ServiceError(
            ErrorKind.VALIDATION, "isActive must be a boolean", "INVALID_STATUS"
        )
    member = await members.update_member_status(
        auth.organization_id, userId, body.is_active, auth.user_id
    )
    verb = "activated" if body.is_active else "deactivated"
    return MemberUpdateResponse(member=member, message=f"Member {verb} successfully")


@router.delete(
    "/{userId}", response_model=RemovedMember, response_model_by_alias=True, tags=["Members"]
)
async def remove_member(
    userId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_owner_or_admin),
    members: MemberService = Depends(get_member_service),
):
    """Remove a member from the organization. The user account is kept."""
    return await members.remove_member(auth.organization_id, userId, auth.user_id)


@router.delete("/{userId}/permanent", tags=["Members"])
async def delete_member_permanent(
    userId: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_owner),
    members: MemberService = Depends(get_member_service),
):
    """Permanently delete a member and their account (Phase 2)."""
    await members.delete_member_permanent(auth.organization_id, userId, auth.user_id)
