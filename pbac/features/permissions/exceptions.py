"""
Lookup errors raised by the RBAC provider.
"""


class PermissionNotFound(ValueError):
    @classmethod
    def named(cls, name: str, guard_name: str) -> "PermissionNotFound":
        return cls(f"There is no permission named `{name}` for guard `{guard_name}`.")

    @classmethod
    def with_id(cls, permission_id: str, guard_name: str) -> "PermissionNotFound":
        return cls(f"There is no permission with id `{permission_id}` for guard `{guard_name}`.")


class RoleNotFound(ValueError):
    @classmethod
    def named(cls, name: str, guard_name: str) -> "RoleNotFound":
        return cls(f"There is no role named `{name}` for guard `{guard_name}`.")

    @classmethod
    def with_id(cls, role_id: str, guard_name: str) -> "RoleNotFound":
        return cls(f"There is no role with id `{role_id}` for guard `{guard_name}`.")
