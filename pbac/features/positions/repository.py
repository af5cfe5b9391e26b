"""
Position lookups.
"""
from typing import Any, Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.features.positions import refs
from pbac.features.positions.exceptions import PositionNotFound
from pbac.features.positions.models import Position


class PositionRepository:
    """
    Resolves position identifiers to stored positions.

    The position model is injected so an application can map its own
    subclass; it defaults to ``Position``.

    Usage:
        repo = PositionRepository(db)
        manager = await repo.resolve("Manager")
        same = await repo.resolve(manager.id)
    """

    def __init__(self, session: AsyncSession, model: type[Position] = Position):
        self.session = session
        self.model = model

    async def find_by_name(self, name: str) -> Optional[Position]:
        result = await self.session.execute(select(self.model).where(self.model.name == name))
        return result.scalars().first()

    async def find_by_id(self, position_id: int) -> Optional[Position]:
        result = await self.session.execute(select(self.model).where(self.model.id == position_id))
        return result.scalars().first()

    async def resolve(self, identifier: Any) -> Position:
        """
        Resolve a name, numeric id (int or digit string), Position or single reference.

        A Position is returned unchanged.

        Raises:
            PositionNotFound: no stored position matches
            TypeError: the identifier names more than one position
        """
        ref = refs.to_ref(identifier)

        if isinstance(ref, refs.PositionEntity):
            return ref.position

        if isinstance(ref, refs.PositionId):
            position = await self.find_by_id(ref.id)
            if position is None:
                raise PositionNotFound.with_id(ref.id)
            return position

        if isinstance(ref, refs.PositionName):
            if refs.is_numeric(ref.name):
                return await self.resolve(refs.PositionId(int(ref.name)))
            position = await self.find_by_name(ref.name)
            if position is None:
                raise PositionNotFound.named(ref.name)
            return position

        raise TypeError("Expected a single position, got a collection")

    async def resolve_many(self, identifiers: Iterable[Any]) -> list[Position]:
        """Resolve every non-blank leaf of nested input, dropping duplicates, in input order."""
        resolved: dict[int, Position] = {}
        for identifier in refs.flatten(identifiers):
            if refs.is_blank(identifier):
                continue
            position = await self.resolve(identifier)
            resolved.setdefault(position.id, position)
        return list(resolved.values())
