"""
User model with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from pbac.core.database.base import Base, SoftDeleteMixin, TimestampMixin
from pbac.features.permissions.models import HasRoles, generate_ulid
from pbac.features.positions.models import HasPositions


class User(Base, TimestampMixin, SoftDeleteMixin, HasRoles, HasPositions):
    """
    User model representing authenticated users.

    Users hold positions, roles and direct permissions. Deleting a user with
    ``soft_delete()`` keeps those links; ``session.delete(user)`` removes them.
    """
    __tablename__ = "users"

    # Primary key using ULID (Universally Unique Lexicographically Sortable Identifier)
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
