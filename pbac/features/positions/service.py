"""
Subject-bound facade over the position engine.
"""
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.features.permissions.provider import RBACProvider
from pbac.features.positions.assignments import AssignmentManager
from pbac.features.positions.membership import MembershipQuery
from pbac.features.positions.repository import PositionRepository
from pbac.features.positions.resolver import PermissionResolver


class PositionHolder:
    """
    Position, role and permission operations for one subject.

    Composes the assignment, membership and resolution services around a
    single session so callers do not wire them by hand.

    Usage:
        holder = PositionHolder(db, user)
        await holder.assign_position("Manager")
        await db.commit()
        assert await holder.has_permission_to("approve-invoice")
    """

    def __init__(
        self,
        session: AsyncSession,
        subject: Any,
        repository: PositionRepository | None = None,
        provider: RBACProvider | None = None,
    ):
        self.session = session
        self.subject = subject
        self.repository = repository or PositionRepository(session)
        self.provider = provider or RBACProvider(session)
        self.assignments = AssignmentManager(session, self.repository)
        self.membership = MembershipQuery(session, self.repository, self.assignments)
        self.resolver = PermissionResolver(session, self.provider, self.assignments)

    async def assign_position(self, *positions: Any) -> "PositionHolder":
        await self.assignments.assign(self.subject, *positions)
        return self

    async def remove_position(self, position: Any) -> "PositionHolder":
        await self.assignments.remove(self.subject, position)
        return self

    async def sync_positions(self, *positions: Any) -> "PositionHolder":
        await self.assignments.sync(self.subject, *positions)
        return self

    async def has_position(self, positions: Any) -> bool:
        return await self.membership.has(self.subject, positions)

    async def has_any_position(self, *positions: Any) -> bool:
        return await self.membership.has_any(self.subject, *positions)

    async def has_all_positions(self, *positions: Any) -> bool:
        return await self.membership.has_all(self.subject, *positions)

    async def get_position_names(self) -> list[str]:
        return await self.membership.names_of(self.subject)

    async def has_permission_to(self, permission: Any, guard_name: Optional[str] = None) -> bool:
        return await self.resolver.has_permission_to(self.subject, permission, guard_name)

    async def check_permission_to(self, permission: Any, guard_name: Optional[str] = None) -> bool:
        return await self.resolver.check_permission_to(self.subject, permission, guard_name)
