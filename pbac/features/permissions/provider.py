"""
Role/permission provider.

Everything the position engine needs from the RBAC layer goes through
``RBACProvider``: guard-scoped lookups, the direct and role-based grant checks,
wildcard evaluation, and the grant helpers used by the admin routes.
"""
from typing import Any, Iterable, Optional
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.core import config
from pbac.core.database import morphs
from pbac.features.permissions.exceptions import PermissionNotFound, RoleNotFound
from pbac.features.permissions.models import Permission, Role, model_has_permissions, model_has_roles
from pbac.features.permissions.wildcard import WildcardPermission
from pbac.utils import get_logger


log = get_logger(__name__)


class RBACProvider:
    """
    Guard-scoped role and permission store backed by the ``roles``,
    ``permissions``, ``role_permissions``, ``model_has_roles`` and
    ``model_has_permissions`` tables.

    Usage:
        provider = RBACProvider(db)
        permission = await provider.find_permission("approve-invoice")
        if await provider.has_permission_via_role(user, permission):
            ...
    """

    def __init__(self, session: AsyncSession, wildcard: Optional[bool] = None):
        self.session = session
        self.wildcard = config.WILDCARD_PERMISSIONS if wildcard is None else wildcard

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def guard_for(self, subject: Any) -> str:
        """Guard a subject is checked under when the caller does not name one."""
        return getattr(subject, "guard_name", None) or config.DEFAULT_GUARD

    async def find_permission(self, permission: Any, guard_name: Optional[str] = None) -> Permission:
        """
        Resolve a permission name, id or instance under one guard.

        An instance that belongs to another guard is treated as unknown.

        Raises:
            PermissionNotFound: no such permission for the guard
        """
        guard_name = guard_name or config.DEFAULT_GUARD

        if isinstance(permission, Permission):
            if permission.guard_name != guard_name:
                raise PermissionNotFound.named(permission.name, guard_name)
            return permission

        permission = str(permission)
        result = await self.session.execute(
            select(Permission).where(
                Permission.guard_name == guard_name,
                (Permission.name == permission) | (Permission.id == permission),
            )
        )
        found = result.scalars().first()
        if found is None:
            raise PermissionNotFound.named(permission, guard_name)
        return found

    async def find_role(self, role: Any, guard_name: Optional[str] = None) -> Role:
        """
        Resolve a role name, id or instance under one guard.

        Raises:
            RoleNotFound: no such role for the guard
        """
        guard_name = guard_name or config.DEFAULT_GUARD

        if isinstance(role, Role):
            if role.guard_name != guard_name:
                raise RoleNotFound.named(role.name, guard_name)
            return role

        result = await self.session.execute(
            select(Role).where(
                Role.guard_name == guard_name,
                (Role.name == str(role)) | (Role.id == str(role)),
            )
        )
        found = result.scalars().first()
        if found is None:
            raise RoleNotFound.named(str(role), guard_name)
        return found

    async def roles_of(self, subject: Any) -> list[Role]:
        return await morphs.load_missing(self.session, subject, "roles", Role, model_has_roles, "role_id")

    async def permissions_of(self, subject: Any) -> list[Permission]:
        return await morphs.load_missing(
            self.session, subject, "permissions", Permission, model_has_permissions, "permission_id"
        )

    # ------------------------------------------------------------------
    # Grant checks
    # ------------------------------------------------------------------

    async def has_direct_permission(self, subject: Any, permission: Permission) -> bool:
        permissions = await self.permissions_of(subject)
        return any(granted.id == permission.id for granted in permissions)

    async def has_permission_via_role(self, subject: Any, permission: Permission) -> bool:
        role_ids = {role.id for role in await self.roles_of(subject)}
        return any(role.id in role_ids for role in permission.roles)

    def wildcard_enabled(self, subject: Any) -> bool:
        return self.wildcard

    async def all_permissions(self, subject: Any) -> list[Permission]:
        """Direct permissions plus the permissions of the subject's direct roles."""
        collected: dict[str, Permission] = {}
        for permission in await self.permissions_of(subject):
            collected[permission.id] = permission
        for role in await self.roles_of(subject):
            for permission in role.permissions:
                collected.setdefault(permission.id, permission)
        return list(collected.values())

    async def has_wildcard_permission(
        self, subject: Any, permission: Any, guard_name: Optional[str] = None
    ) -> bool:
        """
        Check a permission against the subject's grants read as wildcard patterns.

        Only grants in the requested guard count. A blank permission is unknown.
        """
        guard_name = guard_name or self.guard_for(subject)

        if isinstance(permission, Permission):
            permission = permission.name

        if not str(permission).strip():
            raise PermissionNotFound.named(str(permission), guard_name)

        requested = WildcardPermission(str(permission))
        for granted in await self.all_permissions(subject):
            if granted.guard_name != guard_name:
                continue
            if WildcardPermission(granted.name).implies(requested):
                log.debug("Wildcard %r implies %r", granted.name, requested.permission)
                return True
        return False

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    async def assign_role(self, subject: Any, *roles: Any) -> Any:
        guard_name = self.guard_for(subject)
        resolved = [await self.find_role(role, guard_name) for role in _flatten(roles)]
        await self._attach(subject, model_has_roles, "role_id", [role.id for role in resolved])
        await morphs.reload(self.session, subject, "roles", Role, model_has_roles, "role_id")
        log.info("Assigned roles %s to %s %s", [r.name for r in resolved], morphs.morph_type(subject), morphs.morph_key(subject))
        return subject

    async def remove_role(self, subject: Any, role: Any) -> Any:
        resolved = await self.find_role(role, self.guard_for(subject))
        await self.session.execute(morphs.detach_stmt(model_has_roles, subject, "role_id", [resolved.id]))
        await morphs.reload(self.session, subject, "roles", Role, model_has_roles, "role_id")
        return subject

    async def give_permission_to(self, subject: Any, *permissions: Any) -> Any:
        guard_name = self.guard_for(subject)
        resolved = [await self.find_permission(p, guard_name) for p in _flatten(permissions)]
        await self._attach(subject, model_has_permissions, "permission_id", [p.id for p in resolved])
        await morphs.reload(self.session, subject, "permissions", Permission, model_has_permissions, "permission_id")
        return subject

    async def revoke_permission_to(self, subject: Any, permission: Any) -> Any:
        resolved = await self.find_permission(permission, self.guard_for(subject))
        await self.session.execute(
            morphs.detach_stmt(model_has_permissions, subject, "permission_id", [resolved.id])
        )
        await morphs.reload(self.session, subject, "permissions", Permission, model_has_permissions, "permission_id")
        return subject

    async def grant_permission_to_role(self, role: Role, *permissions: Any) -> Role:
        for permission in _flatten(permissions):
            permission = await self.find_permission(permission, role.guard_name)
            if permission not in role.permissions:
                role.permissions.append(permission)
        await self.session.flush()
        return role

    async def _attach(self, subject: Any, table, related_key: str, ids: list) -> None:
        if not morphs.is_persisted(subject):
            raise ValueError(f"{morphs.morph_type(subject)} must be saved before it can be granted roles or permissions")
        result = await self.session.execute(morphs.attached_ids_stmt(table, subject, related_key))
        existing = set(result.scalars().all())
        missing = [related_id for related_id in dict.fromkeys(ids) if related_id not in existing]
        if missing:
            await self.session.execute(insert(table), morphs.attach_rows(table, subject, related_key, missing))


def _flatten(values: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple, set)):
            flat.extend(_flatten(value))
        elif value:
            flat.append(value)
    return flat
