"""
Permission and Role models for guard-scoped RBAC.

This module implements the role/permission store the position engine builds on:
- Permissions and roles partitioned by guard (authorization realm)
- Role-permission grants
- Direct roles and permissions for any subject (polymorphic pivots)
- Audit log of administrative changes
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, Table, Column, JSON, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship
from ulid import ULID

from pbac.core import config
from pbac.core.database.base import Base, TimestampMixin
from pbac.core.database.morphs import detach_stmt, morph_pivot, morph_to_many


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

# Role-Permission relationship
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Roles held directly by any subject
model_has_roles = morph_pivot(
    "model_has_roles", "role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE")
)

# Permissions held directly by any subject
model_has_permissions = morph_pivot(
    "model_has_permissions", "permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE")
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    Permission model: an opaque capability key scoped to a guard.

    Examples: "approve-invoice", "invoices.read", "posts.edit,delete"
    """
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("name", "guard_name", name="permissions_name_guard_name_unique"),)

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    guard_name: Mapped[str] = mapped_column(String(50), nullable=False, default=lambda: config.DEFAULT_GUARD)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        secondary=role_permissions,
        back_populates="permissions",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r}, guard={self.guard_name})>"


class Role(Base, TimestampMixin):
    """
    Role model for grouping permissions.

    Examples: approver, clerk, auditor
    """
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("name", "guard_name", name="roles_name_guard_name_unique"),)

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    guard_name: Mapped[str] = mapped_column(String(50), nullable=False, default=lambda: config.DEFAULT_GUARD)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, guard={self.guard_name})>"


class HasRoles:
    """
    Mixin giving a mapped subject direct ``roles`` and ``permissions``.

    The relationships are read-only views of the polymorphic pivots; grants are
    made through ``RBACProvider``. The subject class must have an ``id`` column.
    Set ``guard_name`` on the class to scope its checks to a guard other than
    the configured default.
    """
    guard_name = None

    @declared_attr
    def roles(cls) -> Mapped[list["Role"]]:
        return morph_to_many(cls, "Role", model_has_roles)

    @declared_attr
    def permissions(cls) -> Mapped[list["Permission"]]:
        return morph_to_many(cls, "Permission", model_has_permissions)


@event.listens_for(HasRoles, "before_delete", propagate=True)
def _detach_grants_on_delete(mapper, connection, target):
    connection.execute(detach_stmt(model_has_roles, target, "role_id"))
    connection.execute(detach_stmt(model_has_permissions, target, "permission_id"))


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking permission and position changes.

    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    # Context
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
