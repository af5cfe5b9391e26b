"""
Subject-position assignments.

``AssignmentManager`` owns the ``model_has_positions`` rows of a subject:
additive ``assign``, single ``remove``, replacing ``sync``. Two mapper
listeners on ``HasPositions`` complete the lifecycle:

- after_insert: runs assignments queued while the subject had no row yet
- before_delete: drops a subject's assignments when its row is hard-deleted
  (soft deletion is an UPDATE and leaves them alone)
"""
import weakref
from typing import Any, Iterable
from sqlalchemy import event, insert, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from pbac.core.database import morphs
from pbac.features.positions.models import HasPositions, Position, model_has_positions
from pbac.features.positions.repository import PositionRepository
from pbac.utils import get_logger


log = get_logger(__name__)

RELATED_KEY = "position_id"

# Assignments requested for subjects without a row yet, keyed by instance identity.
# Each entry is a list of batches; every batch is applied once when that instance is inserted.
_pending: "weakref.WeakKeyDictionary[Any, list[list[Position]]]" = weakref.WeakKeyDictionary()


def pending_positions(subject: Any) -> list[list[Position]]:
    """Queued assignment batches of an unpersisted subject."""
    return list(_pending.get(subject, []))


def _defer(subject: Any, positions: list[Position]) -> None:
    _pending.setdefault(subject, []).append(positions)


def _missing_rows(subject: Any, positions: Iterable[Position], existing: set) -> list[dict]:
    ids = [position.id for position in positions if position.id not in existing]
    return morphs.attach_rows(model_has_positions, subject, RELATED_KEY, dict.fromkeys(ids))


def _describe(subject: Any) -> str:
    return f"{morphs.morph_type(subject)} {morphs.morph_key(subject)}"


class AssignmentManager:
    """
    Assign, remove and sync the positions of a subject.

    Usage:
        manager = AssignmentManager(db)
        await manager.assign(user, "Manager", ["Clerk", 3])
        await manager.sync(user, "Auditor")
        await manager.remove(user, "Auditor")
    """

    def __init__(self, session: AsyncSession, repository: PositionRepository | None = None):
        self.session = session
        self.repository = repository or PositionRepository(session)

    async def positions_of(self, subject: Any) -> list[Position]:
        """The subject's positions, loaded from the database once if not cached."""
        return await morphs.load_missing(
            self.session, subject, "positions", self.repository.model, model_has_positions, RELATED_KEY
        )

    async def refresh(self, subject: Any) -> list[Position]:
        return await morphs.reload(
            self.session, subject, "positions", self.repository.model, model_has_positions, RELATED_KEY
        )

    async def assign(self, subject: Any, *positions: Any) -> Any:
        """
        Add positions to a subject, keeping the ones it already has.

        Input may be names, ids, positions, or nested collections of them;
        blank entries are skipped and duplicates collapse. For a subject that
        has not been saved yet the assignment is queued and applied when its
        row is inserted.

        Raises:
            PositionNotFound: a non-blank identifier does not resolve
        """
        resolved = await self.repository.resolve_many(positions)

        if not morphs.is_persisted(subject):
            _defer(subject, resolved)
            log.debug("Deferred positions %s until %s is saved", [p.name for p in resolved], morphs.morph_type(subject))
            return subject

        result = await self.session.execute(morphs.attached_ids_stmt(model_has_positions, subject, RELATED_KEY))
        rows = _missing_rows(subject, resolved, set(result.scalars().all()))
        if rows:
            await self.session.execute(insert(model_has_positions), rows)
        await self.refresh(subject)

        log.info("Assigned positions %s to %s", [p.name for p in resolved], _describe(subject))
        return subject

    async def remove(self, subject: Any, position: Any) -> Any:
        """
        Take one position away from a subject. Missing assignments are ignored.

        Raises:
            PositionNotFound: the identifier does not resolve
        """
        position = await self.repository.resolve(position)

        if not morphs.is_persisted(subject):
            for batch in _pending.get(subject, []):
                batch[:] = [queued for queued in batch if queued.id != position.id]
            return subject

        await self.session.execute(
            morphs.detach_stmt(model_has_positions, subject, RELATED_KEY, [position.id])
        )
        await self.refresh(subject)

        log.info("Removed position %s from %s", position.name, _describe(subject))
        return subject

    async def detach_all(self, subject: Any) -> None:
        """Drop every assignment of a subject, or its queued ones if it is unsaved."""
        if not morphs.is_persisted(subject):
            _pending.pop(subject, None)
            return
        await self.session.execute(morphs.detach_stmt(model_has_positions, subject, RELATED_KEY))

    async def sync(self, subject: Any, *positions: Any) -> Any:
        """Replace a subject's positions with exactly the given ones."""
        await self.detach_all(subject)
        return await self.assign(subject, positions)


@event.listens_for(HasPositions, "after_insert", propagate=True)
def _commit_deferred_positions(mapper, connection, target):
    batches = _pending.pop(target, None)
    if not batches:
        return

    positions: dict[int, Position] = {}
    for batch in batches:
        for position in batch:
            positions.setdefault(position.id, position)

    existing = set(
        connection.execute(morphs.attached_ids_stmt(model_has_positions, target, RELATED_KEY)).scalars().all()
    )
    rows = _missing_rows(target, positions.values(), existing)
    if rows:
        connection.execute(insert(model_has_positions), rows)

    loaded = inspect(target).dict.get("positions") or []
    merged = list(loaded) + [p for p in positions.values() if p not in loaded]
    set_committed_value(target, "positions", merged)

    log.info("Committed deferred positions %s to %s", [p.name for p in positions.values()], _describe(target))


@event.listens_for(HasPositions, "before_delete", propagate=True)
def _detach_positions_on_delete(mapper, connection, target):
    connection.execute(morphs.detach_stmt(model_has_positions, target, RELATED_KEY))
