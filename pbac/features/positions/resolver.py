"""
Permission resolution across direct grants, direct roles and positions.
"""
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.features.permissions.exceptions import PermissionNotFound
from pbac.features.permissions.models import Permission
from pbac.features.permissions.provider import RBACProvider
from pbac.features.positions.assignments import AssignmentManager
from pbac.utils import get_logger


log = get_logger(__name__)


class PermissionResolver:
    """
    Decides whether a subject holds a permission.

    A permission is held when it is granted directly, through a role the
    subject holds directly, or through a role attached to one of the
    subject's positions. The checks run in that order and stop at the first
    grant. With wildcard permissions enabled the provider's wildcard
    evaluator answers on its own.

    Resolution only reads; it never changes assignments or grants.

    Usage:
        resolver = PermissionResolver(db)
        if await resolver.has_permission_to(user, "approve-invoice"):
            ...
    """

    def __init__(
        self,
        session: AsyncSession,
        provider: RBACProvider | None = None,
        assignments: AssignmentManager | None = None,
    ):
        self.session = session
        self.provider = provider or RBACProvider(session)
        self.assignments = assignments or AssignmentManager(session)

    async def has_permission_to(self, subject: Any, permission: Any, guard_name: Optional[str] = None) -> bool:
        """
        Raises:
            PermissionNotFound: the permission does not exist for the guard
        """
        guard_name = guard_name or self.provider.guard_for(subject)

        if self.provider.wildcard_enabled(subject):
            return await self.provider.has_wildcard_permission(subject, permission, guard_name)

        permission = await self.provider.find_permission(permission, guard_name)

        if await self.provider.has_direct_permission(subject, permission):
            log.debug("%s granted directly", permission.name)
            return True
        if await self.provider.has_permission_via_role(subject, permission):
            log.debug("%s granted via role", permission.name)
            return True
        if await self.has_permission_via_position(subject, permission):
            log.debug("%s granted via position", permission.name)
            return True
        return False

    async def has_permission_via_position(self, subject: Any, permission: Permission) -> bool:
        for position in await self.assignments.positions_of(subject):
            if position.has_role(permission.roles):
                return True
        return False

    async def check_permission_to(self, subject: Any, permission: Any, guard_name: Optional[str] = None) -> bool:
        """Like ``has_permission_to`` but an unknown permission is simply not held."""
        try:
            return await self.has_permission_to(subject, permission, guard_name)
        except PermissionNotFound:
            return False

    async def has_any_permission(self, subject: Any, *permissions: Any) -> bool:
        for permission in _flatten(permissions):
            if await self.check_permission_to(subject, permission):
                return True
        return False

    async def has_all_permissions(self, subject: Any, *permissions: Any) -> bool:
        """
        Raises:
            PermissionNotFound: one of the permissions does not exist
        """
        for permission in _flatten(permissions):
            if not await self.has_permission_to(subject, permission):
                return False
        return True

    async def permissions_via_positions(self, subject: Any) -> list[Permission]:
        collected: dict[str, Permission] = {}
        for position in await self.assignments.positions_of(subject):
            for role in position.roles:
                for permission in role.permissions:
                    collected.setdefault(permission.id, permission)
        return list(collected.values())

    async def all_permissions(self, subject: Any) -> list[Permission]:
        """Every permission the subject holds by any path, without duplicates."""
        collected = {permission.id: permission for permission in await self.provider.all_permissions(subject)}
        for permission in await self.permissions_via_positions(subject):
            collected.setdefault(permission.id, permission)
        return list(collected.values())


def _flatten(values) -> list[Any]:
    flat: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple, set)):
            flat.extend(_flatten(value))
        else:
            flat.append(value)
    return flat
