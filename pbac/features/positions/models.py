"""
Position model and its link tables.

A position is a named bundle of roles that can be handed to any subject:
- ``position_has_roles`` links positions to roles (cascades from both sides)
- ``model_has_positions`` links positions to subjects polymorphically and
  cascades when the position is deleted
"""
from sqlalchemy import Column, ForeignKey, Integer, PrimaryKeyConstraint, String, Table, Text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from pbac.core.database.base import Base, TimestampMixin
from pbac.core.database.morphs import morph_pivot, morph_to_many
from pbac.features.permissions.models import Role


# ============================================================================
# Association Tables
# ============================================================================

# Subject-Position assignments
model_has_positions = morph_pivot(
    "model_has_positions", "position_id", Integer, ForeignKey("positions.id", ondelete="CASCADE")
)

# Position-Role relationship
position_has_roles = Table(
    "position_has_roles",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("position_id", Integer, ForeignKey("positions.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("position_id", "role_id", name="position_has_roles_role_id_position_id_primary"),
)


class Position(Base, TimestampMixin):
    """
    Position model: a named grouping of roles assignable to subjects.

    Examples: Manager, Accounts Clerk, Auditor
    """
    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    roles: Mapped[list[Role]] = relationship(
        "Role",
        secondary=position_has_roles,
        lazy="selectin",
        passive_deletes=True,
    )

    def has_role(self, roles) -> bool:
        """True if this position holds the role, or any of the given roles."""
        if not isinstance(roles, (list, tuple, set)):
            roles = [roles]
        wanted = {getattr(role, "id", role) for role in roles}
        return any(role.id in wanted or role.name in wanted for role in self.roles)

    def __repr__(self) -> str:
        return f"<Position(id={self.id}, name={self.name!r})>"


positions_table = Position.__table__


class HasPositions:
    """
    Mixin for subjects that can hold positions.

    Provides a read-only ``positions`` relationship over ``model_has_positions``;
    assignments are changed through ``AssignmentManager``, whose module also
    registers the lifecycle listeners (deferred assignment on insert, detach
    on hard delete) when the package is imported.
    """

    @declared_attr
    def positions(cls) -> Mapped[list["Position"]]:
        return morph_to_many(cls, "Position", model_has_positions)
