"""
Polymorphic many-to-many helpers.

A morph pivot table links rows of *any* mapped model to a target table through
a ``(model_type, model_id)`` pair instead of a foreign key, so a single table
(``model_has_positions``, ``model_has_roles``, ...) serves every subject class.

Usage:
    model_has_tags = morph_pivot("model_has_tags", "tag_id", ForeignKey("tags.id", ondelete="CASCADE"))

    class Taggable:
        @declared_attr
        def tags(cls) -> Mapped[list["Tag"]]:
            return morph_to_many(cls, "Tag", model_has_tags)
"""
from typing import Any

from sqlalchemy import Column, ForeignKey, PrimaryKeyConstraint, String, Table, and_, delete, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import foreign, relationship
from sqlalchemy.orm.attributes import set_committed_value

from pbac.core.database.base import Base


def morph_pivot(name: str, related_key: str, related_type: Any, related_fk: ForeignKey) -> Table:
    """Create a pivot table keyed by (related_key, model_type, model_id)."""
    return Table(
        name,
        Base.metadata,
        Column(related_key, related_type, related_fk, nullable=False),
        Column("model_type", String(255), nullable=False),
        Column("model_id", String(36), nullable=False, index=True),
        PrimaryKeyConstraint(related_key, "model_type", "model_id", name=f"{name}_primary"),
    )


def morph_type(subject: Any) -> str:
    """Name stored in ``model_type`` for a subject instance or class."""
    cls = subject if isinstance(subject, type) else type(subject)
    return cls.__name__


def morph_key(subject: Any) -> str:
    """Primary key of a subject as stored in ``model_id``."""
    return str(inspect(subject).mapper.primary_key_from_instance(subject)[0])


def is_persisted(subject: Any) -> bool:
    return inspect(subject).has_identity


def morph_where(table: Table, subject: Any):
    """WHERE clause selecting the pivot rows of one subject."""
    return and_(
        table.c.model_type == morph_type(subject),
        table.c.model_id == morph_key(subject),
    )


def related_column(table: Table) -> Column:
    """The pivot column holding the target's key (the one with a foreign key)."""
    for column in table.c:
        if column.foreign_keys:
            return column
    raise ValueError(f"Pivot table {table.name!r} has no foreign key column")


def morph_to_many(cls: type, argument: str, table: Table, **kw: Any):
    """
    Read-only relationship from a subject class to the targets of a morph pivot.

    Writes go through the pivot table directly (see ``attach``/``detach``), so
    the relationship is viewonly and never emits its own INSERT/DELETE.

    ``foreign()`` in the primary join switches off foreign key inference for
    the whole relationship, so the secondary join is spelled out as well.
    """
    pivot_column = related_column(table)
    kw.setdefault("lazy", "selectin")
    return relationship(
        argument,
        secondary=table,
        primaryjoin=lambda: and_(
            cls.id == foreign(table.c.model_id),
            table.c.model_type == morph_type(cls),
        ),
        secondaryjoin=lambda: foreign(pivot_column) == next(iter(pivot_column.foreign_keys)).column,
        viewonly=True,
        **kw,
    )


async def load_missing(
    session: AsyncSession,
    subject: Any,
    attribute: str,
    target: type,
    table: Table,
    related_key: str,
) -> list:
    """
    Return the loaded collection ``attribute`` of ``subject``, querying it once if absent.

    Unpersisted subjects have nothing stored yet and get an empty collection.
    """
    state = inspect(subject)
    if attribute not in state.unloaded:
        return getattr(subject, attribute)
    if not state.has_identity:
        set_committed_value(subject, attribute, [])
        return getattr(subject, attribute)
    return await reload(session, subject, attribute, target, table, related_key)


async def reload(
    session: AsyncSession,
    subject: Any,
    attribute: str,
    target: type,
    table: Table,
    related_key: str,
) -> list:
    """Re-read a morph collection from the database and cache it on the subject."""
    stmt = (
        select(target)
        .join(table, table.c[related_key] == inspect(target).primary_key[0])
        .where(morph_where(table, subject))
    )
    result = await session.execute(stmt)
    items = list(result.scalars().all())
    set_committed_value(subject, attribute, items)
    return getattr(subject, attribute)


def attached_ids_stmt(table: Table, subject: Any, related_key: str):
    return select(table.c[related_key]).where(morph_where(table, subject))


def attach_rows(table: Table, subject: Any, related_key: str, ids) -> list[dict]:
    """Pivot rows for ``ids``, ready for ``insert(table)`` executemany."""
    model_type, model_id = morph_type(subject), morph_key(subject)
    return [
        {related_key: related_id, "model_type": model_type, "model_id": model_id}
        for related_id in ids
    ]


def detach_stmt(table: Table, subject: Any, related_key: str, ids=None):
    """DELETE for a subject's pivot rows, optionally limited to ``ids``."""
    stmt = delete(table).where(morph_where(table, subject))
    if ids is not None:
        stmt = stmt.where(table.c[related_key].in_(list(ids)))
    return stmt
