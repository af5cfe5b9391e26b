"""Polymorphic pivot relationships."""
import pytest
from sqlalchemy import inspect
from sqlalchemy.orm import configure_mappers

from pbac.core.database.morphs import related_column
from pbac.features.permissions.models import model_has_permissions, model_has_roles
from pbac.features.positions.models import model_has_positions
from pbac.features.users.models import User


def test_subject_relationships_configure():
    configure_mappers()

    for name in ("roles", "permissions", "positions"):
        relationship = inspect(User).relationships[name]
        assert relationship.viewonly
        assert relationship.target.name == name


@pytest.mark.parametrize(
    "table, key",
    [(model_has_roles, "role_id"), (model_has_permissions, "permission_id"), (model_has_positions, "position_id")],
)
def test_pivot_tables_point_at_their_target(table, key):
    assert related_column(table).name == key


def test_subject_relationships_join_through_the_pivot_key():
    configure_mappers()

    secondaryjoin = str(inspect(User).relationships["positions"].secondaryjoin)
    assert "model_has_positions.position_id" in secondaryjoin
    assert "positions.id" in secondaryjoin
