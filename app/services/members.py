"""
Member service — business logic for organization membership.

Every mutation runs in one transaction that first locks the
organization's active owner rows in user_id order, then the target
membership row (``SELECT ... FOR UPDATE``), before the last-owner check.
Two concurrent demotions queue on the same locks and cannot both commit.
The audit row is written inside that transaction; the live-update
notification is sent only after commit.

Phase 1: list, details, role and status updates, soft removal.
Phase 2 (not implemented): hard delete and self-service account deletion.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import SessionFactory
from app.core.errors import ErrorKind, ServiceError
from app.core.events import (
    MEMBER_REMOVED,
    MEMBER_ROLE_UPDATED,
    MEMBER_STATUS_UPDATED,
    OrganizationNotifier,
)
from app.models.audit_log import AuditLog
from app.models.base import as_utc, utcnow
from app.models.conversation import Conversation
from app.models.organization_member import OrganizationMember
from app.models.user_profile import UserProfile
from rita_shared.schemas.common import MemberAction, MemberRole, SortOrder
from rita_shared.schemas.members import (
    Member,
    MemberList,
    MemberSortField,
    RemovedMember,
    RemovedMemberInfo,
)

log = structlog.get_logger()

RESOURCE_TYPE = "organization_member"

_SORT_COLUMNS = {
    MemberSortField.EMAIL: UserProfile.email,
    MemberSortField.ROLE: OrganizationMember.role,
    MemberSortField.JOINED_AT: OrganizationMember.joined_at,
}


def permits(
    performer_role: Optional[str],
    target_role: Optional[str],
    action: MemberAction,
    *,
    same_user: bool = False,
) -> bool:
    """Permission table for member management actions.

    Owners may act on anyone but themselves. Admins may change the status
    of, or remove, plain users only, and never change roles. Users and
    non-members may do nothing.
    """
    if performer_role is None:
        return False
    if performer_role == MemberRole.OWNER.value:
        return not same_user
    if performer_role == MemberRole.ADMIN.value:
        if action == MemberAction.UPDATE_ROLE:
            return False
        return target_role == MemberRole.USER.value
    return False


def _not_found() -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, "Member not found", "MEMBER_NOT_FOUND")


def _last_owner(verb: str) -> ServiceError:
    return ServiceError(
        ErrorKind.LAST_OWNER, f"Cannot {verb} the last active owner", "LAST_OWNER"
    )


@contextmanager
def _log_failure(event: str, **context):
    """Log a failed mutation with its actor/organization/target, then re-raise."""
    try:
        yield
    except Exception as exc:
        log.error(
            event,
            code=getattr(exc, "code", None),
            error=str(exc),
            **{key: str(value) for key, value in context.items()},
        )
        raise


def _member_select(organization_id: uuid.UUID):
    """Membership joined with the profile and the user's conversation count."""
    counts = (
        select(Conversation.user_id, func.count().label("count"))
        .where(Conversation.organization_id == organization_id)
        .group_by(Conversation.user_id)
        .subquery()
    )
    return (
        select(
            UserProfile.user_id,
            UserProfile.email,
            UserProfile.first_name,
            UserProfile.last_name,
            OrganizationMember.role,
            OrganizationMember.is_active,
            OrganizationMember.joined_at,
            func.coalesce(counts.c.count, 0).label("conversations_count"),
        )
        .select_from(OrganizationMember)
        .join(UserProfile, UserProfile.user_id == OrganizationMember.user_id)
        .outerjoin(counts, counts.c.user_id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == organization_id)
    )


def _active_owners_query(organization_id: uuid.UUID, *, lock: bool = True):
    """Active owner rows, locked in user_id order.

    Every mutation takes these locks before the target row so concurrent
    mutations queue on the same rows in the same order.
    """
    query = (
        select(OrganizationMember.user_id)
        .where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == MemberRole.OWNER.value,
            OrganizationMember.is_active.is_(True),
        )
        .order_by(OrganizationMember.user_id)
    )
    return query.with_for_update() if lock else query


def _to_member(row) -> Member:
    return Member(
        id=row.user_id,
        email=row.email,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        is_active=row.is_active,
        joined_at=as_utc(row.joined_at),
        conversations_count=int(row.conversations_count),
    )


class MemberService:
    """Organization membership management with last-owner protection."""

    def __init__(self, session_factory: SessionFactory, notifier: OrganizationNotifier):
        self._session_factory = session_factory
        self._notifier = notifier

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_members(
        self,
        organization_id: uuid.UUID,
        *,
        role: Optional[MemberRole] = None,
        limit: int = 50,
        offset: int = 0,
        sort_by: MemberSortField = MemberSortField.JOINED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> MemberList:
        """List members with optional role filter; total ignores pagination."""
        column = _SORT_COLUMNS[MemberSortField(sort_by)]
        ordering = column.asc() if SortOrder(sort_order) == SortOrder.ASC else column.desc()

        query = _member_select(organization_id)
        count_query = (
            select(func.count())
            .select_from(OrganizationMember)
            .where(OrganizationMember.organization_id == organization_id)
        )
        if role is not None:
            query = query.where(OrganizationMember.role == MemberRole(role).value)
            count_query = count_query.where(OrganizationMember.role == MemberRole(role).value)

        query = query.order_by(ordering, UserProfile.user_id).limit(limit).offset(offset)

        async with self._session_factory() as session:
            rows = (await session.execute(query)).all()
            total = (await session.execute(count_query)).scalar_one()

        members = [_to_member(row) for row in rows]
        log.debug(
            "member.listed",
            organization_id=str(organization_id),
            member_count=len(members),
            total=total,
        )
        return MemberList(members=members, total=total)

    async def get_member_details(
        self, organization_id: uuid.UUID, user_id: uuid.UUID
    ) -> Member:
        async with self._session_factory() as session:
            return await self._member_details(session, organization_id, user_id)

    async def _member_details(
        self, session: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID
    ) -> Member:
        result = await session.execute(
            _member_select(organization_id).where(UserProfile.user_id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            raise _not_found()
        return _to_member(row)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    async def is_last_active_owner(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        session: Optional[AsyncSession] = None,
    ) -> bool:
        """True when no *other* active owner exists in the organization.

        Inside a mutation pass its session: the owner rows are then locked
        until that transaction ends.
        """
        if session is None:
            async with self._session_factory() as own_session:
                result = await own_session.execute(
                    _active_owners_query(organization_id, lock=False)
                )
                owners = list(result.scalars().all())
        else:
            owners = await self._lock_active_owners(session, organization_id)
        return all(owner_id == user_id for owner_id in owners)

    async def _lock_active_owners(
        self, session: AsyncSession, organization_id: uuid.UUID
    ) -> list[uuid.UUID]:
        result = await session.execute(_active_owners_query(organization_id))
        return list(result.scalars().all())

    async def can_perform_action(
        self,
        organization_id: uuid.UUID,
        performer_id: uuid.UUID,
        target_id: uuid.UUID,
        action: MemberAction,
        session: Optional[AsyncSession] = None,
    ) -> bool:
        if session is None:
            async with self._session_factory() as own_session:
                return await self._can_perform(own_session, organization_id, performer_id, target_id, action)
        return await self._can_perform(session, organization_id, performer_id, target_id, action)

    async def _can_perform(
        self,
        session: AsyncSession,
        organization_id: uuid.UUID,
        performer_id: uuid.UUID,
        target_id: uuid.UUID,
        action: MemberAction,
    ) -> bool:
        result = await session.execute(
            select(OrganizationMember.user_id, OrganizationMember.role).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id.in_([performer_id, target_id]),
            )
        )
        roles = {row.user_id: row.role for row in result}
        return permits(
            roles.get(performer_id),
            roles.get(target_id),
            MemberAction(action),
            same_user=performer_id == target_id,
        )

    async def _lock_membership(
        self, session: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID
    ) -> OrganizationMember:
        result = await session.execute(
            select(OrganizationMember)
            .where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user_id,
            )
            .with_for_update()
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            raise _not_found()
        return membership

    async def _email_of(self, session: AsyncSession, user_id: uuid.UUID) -> Optional[str]:
        result = await session.execute(
            select(UserProfile.email).where(UserProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_member_role(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        new_role: MemberRole,
        performed_by: uuid.UUID,
    ) -> Member:
        """Change a member's role. Only owners reach this (enforced by the route)."""
        new_role = MemberRole(new_role)
        with _log_failure(
            "member.role_update_failed",
            organization_id=organization_id,
            user_id=user_id,
            new_role=new_role.value,
            performed_by=performed_by,
        ):
            if user_id == performed_by:
                raise ServiceError(
                    ErrorKind.CANNOT_MODIFY_SELF, "Cannot change your own role", "CANNOT_MODIFY_SELF"
                )

            async with self._session_factory() as session, session.begin():
                owners = await self._lock_active_owners(session, organization_id)
                membership = await self._lock_membership(session, organization_id, user_id)
                old_role = membership.role

                if old_role == MemberRole.OWNER.value and new_role != MemberRole.OWNER:
                    if all(owner_id == user_id for owner_id in owners):
                        raise _last_owner("demote")

                membership.role = new_role.value
                session.add(membership)

                email = await self._email_of(session, user_id)
                session.add(
                    AuditLog(
                        organization_id=organization_id,
                        user_id=performed_by,
                        action="update_member_role",
                        resource_type=RESOURCE_TYPE,
                        resource_id=str(user_id),
                        details={
                            "targetUserId": str(user_id),
                            "targetEmail": email,
                            "oldRole": old_role,
                            "newRole": new_role.value,
                        },
                    )
                )

        await self._notifier.send_to_organization(
            organization_id,
            {
                "type": MEMBER_ROLE_UPDATED,
                "data": {
                    "userId": str(user_id),
                    "userEmail": email,
                    "oldRole": old_role,
                    "newRole": new_role.value,
                    "updatedBy": str(performed_by),
                    "timestamp": utcnow().isoformat(),
                },
            },
        )
        log.info(
            "member.role_updated",
            organization_id=str(organization_id),
            user_id=str(user_id),
            old_role=old_role,
            new_role=new_role.value,
            performed_by=str(performed_by),
        )
        return await self.get_member_details(organization_id, user_id)

    async def update_member_status(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        is_active: bool,
        performed_by: uuid.UUID,
    ) -> Member:
        """Activate or deactivate a member."""
        with _log_failure(
            "member.status_update_failed",
            organization_id=organization_id,
            user_id=user_id,
            is_active=is_active,
            performed_by=performed_by,
        ):
            if user_id == performed_by:
                raise ServiceError(
                    ErrorKind.CANNOT_MODIFY_SELF, "Cannot change your own status", "CANNOT_MODIFY_SELF"
                )

            async with self._session_factory() as session, session.begin():
                if not await self._can_perform(
                    session, organization_id, performed_by, user_id, MemberAction.UPDATE_STATUS
                ):
                    raise ServiceError(
                        ErrorKind.PERMISSION_DENIED,
                        "Permission denied: You cannot change this member's status",
                        "INSUFFICIENT_PERMISSIONS",
                    )

                owners = await self._lock_active_owners(session, organization_id)
                membership = await self._lock_membership(session, organization_id, user_id)
                old_status = membership.is_active

                if membership.role == MemberRole.OWNER.value and not is_active:
                    if all(owner_id == user_id for owner_id in owners):
                        raise _last_owner("deactivate")

                membership.is_active = is_active
                session.add(membership)

                email = await self._email_of(session, user_id)
                session.add(
                    AuditLog(
                        organization_id=organization_id,
                        user_id=performed_by,
                        action="activate_member" if is_active else "deactivate_member",
                        resource_type=RESOURCE_TYPE,
                        resource_id=str(user_id),
                        details={
                            "targetUserId": str(user_id),
                            "targetEmail": email,
                            "oldStatus": old_status,
                            "newStatus": is_active,
                        },
                    )
                )

        # Clients of a deactivated user log that session out on this event.
        await self._notifier.send_to_organization(
            organization_id,
            {
                "type": MEMBER_STATUS_UPDATED,
                "data": {
                    "userId": str(user_id),
                    "userEmail": email,
                    "isActive": is_active,
                    "updatedBy": str(performed_by),
                    "timestamp": utcnow().isoformat(),
                },
            },
        )
        log.info(
            "member.status_updated",
            organization_id=str(organization_id),
            user_id=str(user_id),
            is_active=is_active,
            performed_by=str(performed_by),
        )
        return await self.get_member_details(organization_id, user_id)

    async def remove_member(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        performed_by: uuid.UUID,
    ) -> RemovedMember:
        """Soft-remove a member: the membership row goes, the user profile stays."""
        with _log_failure(
            "member.remove_failed",
            organization_id=organization_id,
            user_id=user_id,
            performed_by=performed_by,
        ):
            if user_id == performed_by:
                raise ServiceError(
                    ErrorKind.CANNOT_REMOVE_SELF,
                    "Cannot remove yourself from the organization",
                    "CANNOT_REMOVE_SELF",
                )

            async with self._session_factory() as session, session.begin():
                if not await self._can_perform(
                    session, organization_id, performed_by, user_id, MemberAction.REMOVE_MEMBER
                ):
                    raise ServiceError(
                        ErrorKind.PERMISSION_DENIED,
                        "Permission denied: You cannot remove this member",
                        "INSUFFICIENT_PERMISSIONS",
                    )

                owners = await self._lock_active_owners(session, organization_id)
                membership = await self._lock_membership(session, organization_id, user_id)
                email = await self._email_of(session, user_id)
                if email is None:
                    raise _not_found()
                role = membership.role

                if role == MemberRole.OWNER.value and membership.is_active:
                    if all(owner_id == user_id for owner_id in owners):
                        raise _last_owner("remove")

                # Audit first so the entry still describes the pre-delete state.
                session.add(
                    AuditLog(
                        organization_id=organization_id,
                        user_id=performed_by,
                        action="remove_member",
                        resource_type=RESOURCE_TYPE,
                        resource_id=str(user_id),
                        details={
                            "targetUserId": str(user_id),
                            "targetEmail": email,
                            "targetRole": role,
                            "removalType": "soft",
                        },
                    )
                )
                await session.flush()

                await session.delete(membership)
                await session.execute(
                    update(UserProfile)
                    .where(
                        UserProfile.user_id == user_id,
                        UserProfile.active_organization_id == organization_id,
                    )
                    .values(active_organization_id=None)
                )

        await self._notifier.send_to_organization(
            organization_id,
            {
                "type": MEMBER_REMOVED,
                "data": {
                    "userId": str(user_id),
                    "userEmail": email,
                    "removedBy": str(performed_by),
                    "timestamp": utcnow().isoformat(),
                },
            },
        )
        log.info(
            "member.removed",
            organization_id=str(organization_id),
            user_id=str(user_id),
            user_email=email,
            performed_by=str(performed_by),
        )
        return RemovedMember(
            message="Member removed from organization successfully",
            removed_member=RemovedMemberInfo(id=user_id, email=email, role=role),
        )

    # ------------------------------------------------------------------
    # Phase 2 placeholders
    # ------------------------------------------------------------------

    async def delete_member_permanent(
        self,
        organization_id: uuid.UUID,
        user_id: uuid.UUID,
        performed_by: uuid.UUID,
        reason: Optional[str] = None,
    ):
        log.warning(
            "member.phase2_called",
            operation="delete_member_permanent",
            organization_id=str(organization_id),
            user_id=str(user_id),
            performed_by=str(performed_by),
            reason=reason,
        )
        raise ServiceError(
            ErrorKind.NOT_IMPLEMENTED,
            "Hard delete not implemented",
            "NOT_IMPLEMENTED",
            message=(
                "Permanent member deletion will be available in Phase 2. This feature "
                "requires webhook integration for Keycloak account cleanup."
            ),
        )

    async def delete_own_account(
        self,
        user_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ):
        log.warning(
            "member.phase2_called",
            operation="delete_own_account",
            organization_id=str(organization_id),
            user_id=str(user_id),
            reason=reason,
        )
        raise ServiceError(
            ErrorKind.NOT_IMPLEMENTED,
            "Delete own account not implemented",
            "NOT_IMPLEMENTED",
            message=(
                "Self-deletion will be available in Phase 2. This feature requires webhook "
                "integration for Keycloak account cleanup and organization deletion if you "
                "are the last owner."
            ),
        )
