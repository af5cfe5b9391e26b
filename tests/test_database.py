"""Schema setup and teardown."""
import pytest
from sqlalchemy import inspect

from pbac.core.database.engine import drop_db, init_db

pytestmark = pytest.mark.asyncio


async def _tables(engine) -> set[str]:
    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


async def test_position_tables_are_created_and_dropped(engine):
    assert {"positions", "model_has_positions", "position_has_roles"} <= await _tables(engine)

    await drop_db(engine)
    assert await _tables(engine) == set()

    await init_db(engine)
    assert "positions" in await _tables(engine)


async def test_position_role_link_has_named_composite_key(engine):
    async with engine.connect() as conn:
        pk = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_pk_constraint("position_has_roles"))

    assert sorted(pk["constrained_columns"]) == ["position_id", "role_id"]
