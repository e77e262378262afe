"""Organization member schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import UUID4

from .common import CamelModel, MemberRole


class MemberSortField(str, Enum):
    EMAIL = "email"
    ROLE = "role"
    JOINED_AT = "joinedAt"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class MemberRoleUpdateRequest(CamelModel):
    """Validated in the route so a bad value answers INVALID_ROLE, not 422."""
    role: Optional[str] = None


class MemberStatusUpdateRequest(CamelModel):
    """Must be a real JSON boolean; checked in the route (INVALID_STATUS)."""
    is_active: Any = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class Member(CamelModel):
    """A membership joined with the user profile and conversation count."""
    id: UUID4
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: MemberRole
    is_active: bool
    joined_at: datetime
    conversations_count: int = 0


class MemberList(CamelModel):
    members: List[Member]
    total: int


class MemberDetailResponse(CamelModel):
    member: Member


class MemberUpdateResponse(CamelModel):
    success: bool = True
    member: Member
    message: str


class RemovedMemberInfo(CamelModel):
    id: UUID4
    email: str
    role: MemberRole


class RemovedMember(CamelModel):
    success: bool = True
    message: str
    removed_member: RemovedMemberInfo
