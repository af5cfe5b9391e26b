"""Assigning, removing and syncing positions, including deferred assignment."""
import pytest
from sqlalchemy import select

from pbac.features.positions.assignments import AssignmentManager, pending_positions
from pbac.features.positions.exceptions import PositionNotFound
from pbac.features.positions.membership import MembershipQuery
from pbac.features.positions.models import model_has_positions, position_has_roles
from pbac.features.users.models import User
from tests.helpers import make_user

pytestmark = pytest.mark.asyncio


async def _stored_names(session_factory, user_id: str) -> set[str]:
    async with session_factory() as session:
        user = (await session.execute(select(User).where(User.id == user_id))).scalar_one()
        return {position.name for position in user.positions}


async def test_assign_is_an_idempotent_union(db, catalog, session_factory):
    user = await make_user(db, "u@acme.io")
    manager = AssignmentManager(db)

    await manager.assign(user, "Manager")
    await manager.assign(user, ["Manager", "Auditor"], catalog.manager.id)
    await db.commit()

    assert {p.name for p in user.positions} == {"Manager", "Auditor"}
    assert await _stored_names(session_factory, user.id) == {"Manager", "Auditor"}

    rows = (await db.execute(select(model_has_positions))).all()
    assert len(rows) == 2
    assert {row.model_type for row in rows} == {"User"}


async def test_assign_skips_blank_entries(db, catalog):
    user = await make_user(db, "u@acme.io")

    await AssignmentManager(db).assign(user, "", None, ["Manager", ""])

    assert [p.name for p in user.positions] == ["Manager"]


async def test_assign_unknown_position_fails_without_writing(db, catalog):
    user = await make_user(db, "u@acme.io")

    with pytest.raises(PositionNotFound):
        await AssignmentManager(db).assign(user, "Manager", "Janitor")

    assert (await db.execute(select(model_has_positions))).all() == []


async def test_sync_replaces_the_set(db, catalog, session_factory):
    user = await make_user(db, "u@acme.io")
    manager = AssignmentManager(db)

    await manager.assign(user, "Manager", "Accounts Clerk")
    await manager.sync(user, ["Auditor", "Accounts Clerk"])
    await db.commit()

    assert await _stored_names(session_factory, user.id) == {"Auditor", "Accounts Clerk"}

    await manager.sync(user)
    await db.commit()

    assert user.positions == []
    assert await _stored_names(session_factory, user.id) == set()


async def test_remove_detaches_one_and_ignores_missing(db, catalog):
    user = await make_user(db, "u@acme.io")
    manager = AssignmentManager(db)
    await manager.assign(user, "Manager", "Auditor")

    await manager.remove(user, "Manager")
    await manager.remove(user, "Accounts Clerk")

    assert [p.name for p in user.positions] == ["Auditor"]


async def test_deferred_assignment_applies_to_that_instance_only(db, catalog, session_factory):
    pending = User(email="new@acme.io", name="New")
    bystander = User(email="other@acme.io", name="Other")

    await AssignmentManager(db).assign(pending, "Manager")
    await AssignmentManager(db).assign(pending, ["Auditor", "Manager"])
    assert [[p.name for p in batch] for batch in pending_positions(pending)] == [
        ["Manager"],
        ["Auditor", "Manager"],
    ]

    db.add(bystander)
    await db.commit()
    assert await _stored_names(session_factory, bystander.id) == set()
    assert pending_positions(pending)

    db.add(pending)
    await db.commit()

    assert pending_positions(pending) == []
    assert await _stored_names(session_factory, pending.id) == {"Manager", "Auditor"}
    assert await _stored_names(session_factory, bystander.id) == set()
    assert await MembershipQuery(db).has(pending, "Manager")


async def test_deferred_batches_fire_once(db, catalog):
    user = User(email="new@acme.io", name="New")
    await AssignmentManager(db).assign(user, "Manager")
    db.add(user)
    await db.commit()

    user.name = "Renamed"
    await db.commit()

    rows = (await db.execute(select(model_has_positions))).all()
    assert len(rows) == 1


async def test_sync_and_remove_on_unsaved_subject_edit_the_queue(db, catalog, session_factory):
    user = User(email="new@acme.io", name="New")
    manager = AssignmentManager(db)

    await manager.assign(user, "Manager", "Accounts Clerk")
    await manager.remove(user, "Accounts Clerk")
    db.add(user)
    await db.commit()
    assert await _stored_names(session_factory, user.id) == {"Manager"}

    other = User(email="other@acme.io", name="Other")
    await manager.assign(other, "Manager")
    await manager.sync(other, "Auditor")
    db.add(other)
    await db.commit()
    assert await _stored_names(session_factory, other.id) == {"Auditor"}


async def test_hard_delete_detaches_soft_delete_keeps(db, catalog):
    kept = await make_user(db, "kept@acme.io")
    gone = await make_user(db, "gone@acme.io")
    manager = AssignmentManager(db)
    await manager.assign(kept, "Manager")
    await manager.assign(gone, "Manager", "Auditor")
    await db.commit()

    kept.soft_delete()
    await db.delete(gone)
    await db.commit()

    rows = (await db.execute(select(model_has_positions))).all()
    assert [(row.model_id, row.position_id) for row in rows] == [(kept.id, catalog.manager.id)]
    assert kept.is_trashed


async def test_deleting_a_position_cascades(db, catalog):
    user = await make_user(db, "u@acme.io")
    await AssignmentManager(db).assign(user, "Manager", "Auditor")
    await db.commit()
    manager_id = catalog.manager.id

    await db.delete(catalog.manager)
    await db.commit()

    assignments = (await db.execute(select(model_has_positions.c.position_id))).scalars().all()
    links = (await db.execute(select(position_has_roles.c.position_id))).scalars().all()
    assert manager_id not in assignments
    assert manager_id not in links
    assert [p.name for p in await AssignmentManager(db).refresh(user)] == ["Auditor"]
