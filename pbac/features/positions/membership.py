"""
Position membership checks and position-scoped queries.
"""
from typing import Any
from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.features.positions import refs
from pbac.features.positions.assignments import AssignmentManager
from pbac.features.positions.models import Position
from pbac.features.positions.repository import PositionRepository


def matches(held: list[Position], ref: refs.PositionRef) -> bool:
    """
    True if any of the held positions satisfies the reference.

    Names and ids are compared against the held positions directly; nothing
    is looked up.
    """
    if isinstance(ref, refs.PositionName):
        return any(position.name == ref.name for position in held)
    if isinstance(ref, refs.PositionId):
        return any(position.id == ref.id for position in held)
    if isinstance(ref, refs.PositionEntity):
        return any(position.id == ref.position.id for position in held)
    if ref.collection:
        wanted = {item.position.id for item in ref.refs if isinstance(item, refs.PositionEntity)}
        others = [item for item in ref.refs if not isinstance(item, refs.PositionEntity)]
        held_ids = {position.id for position in held}
        return bool(wanted & held_ids) or any(matches(held, item) for item in others)
    return any(matches(held, item) for item in ref.refs)


class MembershipQuery:
    """
    Answers "does this subject hold position X" and builds position filters.

    Usage:
        membership = MembershipQuery(db)
        await membership.has(user, "Manager|Auditor")
        stmt = await membership.scope_by_position(select(User), ["Manager", 4])
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: PositionRepository | None = None,
        assignments: AssignmentManager | None = None,
    ):
        self.session = session
        self.repository = repository or PositionRepository(session)
        self.assignments = assignments or AssignmentManager(session, self.repository)

    async def has(self, subject: Any, positions: Any) -> bool:
        """
        Whether the subject holds the position, or any of the positions.

        ``positions`` may be a name, an ``"a|b"`` list of names, an int id, a
        Position, a list/tuple of any of those, or a collection of positions
        (matched by intersection; empty means False). Digit-only strings are
        compared as names.
        """
        held = await self.assignments.positions_of(subject)
        ref = refs.to_ref(positions, numeric_strings=False, delimited=True)
        return matches(held, ref)

    async def has_any(self, subject: Any, *positions: Any) -> bool:
        return await self.has(subject, list(positions))

    async def has_all(self, subject: Any, *positions: Any) -> bool:
        held = await self.assignments.positions_of(subject)
        wanted = refs.to_ref(list(positions), numeric_strings=False, delimited=True)
        return all(matches(held, leaf) for leaf in refs.flatten([wanted]))

    async def names_of(self, subject: Any) -> list[str]:
        """Names of the subject's positions in load order."""
        return [position.name for position in await self.assignments.positions_of(subject)]

    async def scope_by_position(self, query: Select, positions: Any, model: type | None = None) -> Select:
        """
        Restrict a SELECT of subjects to those holding at least one of the positions.

        Identifiers are resolved through the repository, so unknown names or
        ids raise instead of silently matching nothing.

        Raises:
            PositionNotFound: an identifier does not resolve
        """
        if model is None:
            model = query.column_descriptions[0]["entity"]

        ref = refs.to_ref(positions, delimited=True)
        resolved = [await self.repository.resolve(leaf) for leaf in refs.flatten([ref])]
        ids = [position.id for position in resolved]

        return query.where(model.positions.any(self.repository.model.id.in_(ids)))
